import attrs


@attrs.define(frozen=True)
class EventDefinition:
    uid: int
    name: str = ''
    usage: int | None = None
    avail: tuple[float, ...] = ()
    early: float | None = None
    late: float | None = None


@attrs.define(frozen=True)
class EstablishmentConfig:
    """Typed view of the remotely hosted establishment configuration."""

    est: str
    est_full: str
    est_name: str = ''
    party_min: int = 1
    party_max: int = 20
    area_any: bool = False
    ar_select: bool = False
    allergy: bool = False
    usr_lang: str = 'english'
    curr_sym: str = '$'
    dapi: str | None = None
    events: tuple[EventDefinition, ...] = ()
    lng: dict[str, str] = attrs.field(factory=dict)

    @property
    def area_selection_required(self) -> bool:
        return self.ar_select and not self.area_any

    def event_usage(self, uid: int) -> int | None:
        event = next((event for event in self.events if event.uid == uid), None)
        return event.usage if event else None

    def text(self, key: str, default: str) -> str:
        value = self.lng.get(key)
        return value if isinstance(value, str) and value else default
