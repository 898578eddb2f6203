import re

import attrs

from table_booking.platform.exception.exceptions import DetailsValidationError
from table_booking.platform.logging.loguru_io import Logger


EMAIL_PATTERN = re.compile(r'\S+@\S+\.\S+')


@attrs.define(frozen=True)
class Allergy:
    has: bool = False
    details: str = ''


@attrs.define(frozen=True)
class CustomerDetails:
    first_name: str
    last_name: str
    email: str = attrs.field(repr=False)
    phone: str = attrs.field(repr=False)
    notes: str = ''
    optin: bool = True
    allergy: Allergy = attrs.field(factory=Allergy)
    bookopt: tuple[str, ...] = ()
    guestopt: tuple[str, ...] = ()

    @classmethod
    @Logger.io
    def create(
        cls,
        *,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        notes: str = '',
        optin: bool = True,
        allergy: Allergy | None = None,
        bookopt: tuple[str, ...] = (),
        guestopt: tuple[str, ...] = (),
    ) -> 'CustomerDetails':
        details = cls(
            first_name=(first_name or '').strip(),
            last_name=(last_name or '').strip(),
            email=(email or '').strip(),
            phone=(phone or '').strip(),
            notes=(notes or '').strip(),
            optin=optin,
            allergy=allergy or Allergy(),
            bookopt=tuple(bookopt),
            guestopt=tuple(guestopt),
        )
        if errors := details.validate():
            raise DetailsValidationError(errors)
        return details

    def validate(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        if not self.first_name:
            errors['first_name'] = 'First name is required'
        if not self.last_name:
            errors['last_name'] = 'Last name is required'
        if not self.email:
            errors['email'] = 'Email is required'
        elif not EMAIL_PATTERN.fullmatch(self.email):
            errors['email'] = 'Email is invalid'
        if not self.phone:
            errors['phone'] = 'Phone is required'
        if self.allergy.has and not self.allergy.details.strip():
            errors['allergy'] = 'Please describe the allergy'
        return errors

    def to_update_params(self) -> dict[str, str]:
        params = {
            'firstName': self.first_name,
            'lastName': self.last_name,
            'email': self.email,
            'phone': self.phone,
            'optem': '1' if self.optin else '0',
        }
        if self.notes:
            params['notes'] = self.notes
        if self.allergy.has and self.allergy.details:
            params['dietary'] = self.allergy.details.strip()
            params['allergies'] = self.allergy.details.strip()
        if self.bookopt:
            params['bookopt'] = ','.join(self.bookopt)
        if self.guestopt:
            params['guestopt'] = ','.join(self.guestopt)
        return params
