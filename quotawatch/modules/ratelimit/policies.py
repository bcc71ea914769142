"""
Traffic classes and their registry.

Purpose
-------
A traffic class is an independently configured fixed-window quota:
window length, request ceiling, which request attribute identifies the
subject, and the message shown on rejection. The set of classes is
configuration-driven; four ship by default.

Configuration Keys
------------------
- rate_limits.classes.<name>.window_seconds   : int  (> 0)
- rate_limits.classes.<name>.max_requests     : int  (>= 1)
- rate_limits.classes.<name>.identity_source  : phone | user | ip | custom
- rate_limits.classes.<name>.message          : str

Design Decisions
----------------
- Invalid entries are logged and skipped; a built-in class of the same
  name keeps its default values.
- An unknown class name is a caller error (`UnknownTrafficClassError`),
  raised before the store is touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from quotawatch.core.config import ConfigManager
from quotawatch.core.config.errors import ConfigError, ConfigValidationError
from quotawatch.core.logging.logger import get_logger
from quotawatch.modules.ratelimit.identity import IdentitySource

logger = get_logger(__name__)

DEFAULT_REJECTION_MESSAGE = "Too many requests. Please try again later."


class UnknownTrafficClassError(ConfigError):
    """Raised when a traffic class name has not been registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown traffic class: {name!r}")


@dataclass(frozen=True)
class TrafficClass:
    """One fixed-window quota."""

    name: str
    window_seconds: int
    max_requests: int
    identity_source: IdentitySource = IdentitySource.CUSTOM
    message: str = DEFAULT_REJECTION_MESSAGE

    def __post_init__(self) -> None:
        if not self.name or ":" in self.name:
            raise ConfigValidationError(
                f"Traffic class name must be non-empty and contain no ':' (got {self.name!r})"
            )
        if not _is_int(self.window_seconds) or self.window_seconds <= 0:
            raise ConfigValidationError(
                f"{self.name}: window_seconds must be a positive integer"
            )
        if not _is_int(self.max_requests) or self.max_requests < 1:
            raise ConfigValidationError(
                f"{self.name}: max_requests must be an integer >= 1"
            )
        if not isinstance(self.identity_source, IdentitySource):
            raise ConfigValidationError(
                f"{self.name}: identity_source must be an IdentitySource"
            )

    @classmethod
    def from_mapping(
        cls,
        name: str,
        data: Mapping[str, Any],
        base: Optional["TrafficClass"] = None,
    ) -> "TrafficClass":
        """
        Build a class from a config mapping, filling gaps from `base`.

        Raises
        ------
        ConfigValidationError
            On missing or invalid values.
        """
        if not isinstance(data, Mapping):
            raise ConfigValidationError(f"{name}: traffic class config must be a mapping")

        def pick(field: str) -> Any:
            if field in data and data[field] is not None:
                return data[field]
            if base is not None:
                return getattr(base, field)
            raise ConfigValidationError(f"{name}: missing required key '{field}'")

        raw_source = data.get("identity_source")
        if raw_source is None:
            source = base.identity_source if base is not None else IdentitySource.CUSTOM
        else:
            try:
                source = IdentitySource(str(raw_source).lower())
            except ValueError as exc:
                raise ConfigValidationError(
                    f"{name}: unknown identity_source {raw_source!r}"
                ) from exc

        message = data.get("message") or (base.message if base else DEFAULT_REJECTION_MESSAGE)

        return cls(
            name=name,
            window_seconds=pick("window_seconds"),
            max_requests=pick("max_requests"),
            identity_source=source,
            message=str(message),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "window_seconds": self.window_seconds,
            "max_requests": self.max_requests,
            "identity_source": self.identity_source.value,
            "message": self.message,
        }


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


DEFAULT_TRAFFIC_CLASSES: Dict[str, TrafficClass] = {
    tc.name: tc
    for tc in (
        TrafficClass(
            name="whatsapp",
            window_seconds=60 * 60,
            max_requests=50,
            identity_source=IdentitySource.PHONE,
            message=(
                "You've reached the hourly message limit (50 messages). "
                "Please try again later."
            ),
        ),
        TrafficClass(
            name="search",
            window_seconds=60 * 60,
            max_requests=30,
            identity_source=IdentitySource.USER,
            message=(
                "You've reached the hourly search limit (30 searches). "
                "Please try again later."
            ),
        ),
        TrafficClass(
            name="auth",
            window_seconds=15 * 60,
            max_requests=10,
            identity_source=IdentitySource.IP,
            message="Too many authentication attempts. Please try again in 15 minutes.",
        ),
        TrafficClass(
            name="global",
            window_seconds=60 * 60,
            max_requests=1000,
            identity_source=IdentitySource.IP,
            message=DEFAULT_REJECTION_MESSAGE,
        ),
    )
}


class TrafficClassRegistry:
    """
    Name → TrafficClass lookup.

    Example
    -------
    >>> registry = TrafficClassRegistry.from_config()
    >>> registry.get("auth").max_requests
    10
    >>> registry.custom("export", max_requests=5, window_seconds=60)
    """

    def __init__(self, classes: Optional[List[TrafficClass]] = None) -> None:
        self._classes: Dict[str, TrafficClass] = {}
        for traffic_class in classes if classes is not None else DEFAULT_TRAFFIC_CLASSES.values():
            self._classes[traffic_class.name] = traffic_class

    @classmethod
    def from_config(cls, config_manager: type[ConfigManager] = ConfigManager) -> "TrafficClassRegistry":
        """Defaults overlaid with `rate_limits.classes` from config."""
        registry = cls()
        configured = config_manager.get("rate_limits.classes", {})

        if not isinstance(configured, Mapping):
            logger.error(
                "rate_limits.classes is not a mapping; using built-in traffic classes",
                extra={"config_type": type(configured).__name__},
            )
            return registry

        for name, data in configured.items():
            try:
                traffic_class = TrafficClass.from_mapping(
                    str(name), data or {}, base=registry._classes.get(str(name))
                )
            except ConfigValidationError as exc:
                logger.error(
                    "Invalid traffic class config; entry skipped",
                    extra={
                        "traffic_class": str(name),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue
            registry._classes[traffic_class.name] = traffic_class

        logger.info(
            "Traffic classes loaded",
            extra={"traffic_classes": {n: c.to_dict() for n, c in registry._classes.items()}},
        )
        return registry

    def register(self, traffic_class: TrafficClass) -> TrafficClass:
        """Add or replace a traffic class."""
        replaced = traffic_class.name in self._classes
        self._classes[traffic_class.name] = traffic_class
        logger.info(
            "Traffic class registered",
            extra={
                "traffic_class": traffic_class.name,
                "replaced": replaced,
                "window_seconds": traffic_class.window_seconds,
                "max_requests": traffic_class.max_requests,
                "identity_source": traffic_class.identity_source.value,
            },
        )
        return traffic_class

    def custom(
        self,
        name: str,
        max_requests: int,
        window_seconds: int,
        message: Optional[str] = None,
    ) -> TrafficClass:
        """Register an ad-hoc class keyed by identifier, phone or address."""
        return self.register(
            TrafficClass(
                name=name,
                window_seconds=window_seconds,
                max_requests=max_requests,
                identity_source=IdentitySource.CUSTOM,
                message=message or DEFAULT_REJECTION_MESSAGE,
            )
        )

    def get(self, name: str) -> TrafficClass:
        try:
            return self._classes[name]
        except KeyError:
            raise UnknownTrafficClassError(name) from None

    def resolve(self, traffic_class: Union[str, TrafficClass]) -> TrafficClass:
        if isinstance(traffic_class, TrafficClass):
            return traffic_class
        return self.get(traffic_class)

    def names(self) -> List[str]:
        return sorted(self._classes)

    def __contains__(self, name: object) -> bool:
        return name in self._classes

    def __iter__(self) -> Iterator[TrafficClass]:
        return iter(self._classes.values())

    def __len__(self) -> int:
        return len(self._classes)
