"""Media type descriptors parsed from Content-Type and Accept headers."""

from typing import Self

from pydantic import BaseModel, ConfigDict
from python_multipart.multipart import parse_options_header

from traffic.core.exceptions import MediaTypeError

WILDCARD = "*"


class MediaType(BaseModel):
    """Structured form of a media type such as ``application/ld+json; charset=utf-8``.

    Attributes:
        type: Normalized ``media/subtype[+suffix]``, lower-cased.
        media: Top-level type (``application``).
        subtype: Everything after the slash (``ld+json``).
        protocol: Everything before the ``+`` (``application/ld``).
        suffix: Structured-syntax suffix (``json``), None when absent.
        params: Header parameters (``{"charset": "utf-8"}``).
    """

    model_config = ConfigDict(frozen=True)

    type: str
    media: str
    subtype: str
    protocol: str
    suffix: str | None = None
    params: dict[str, str] = {}

    @classmethod
    def parse(cls, value: str) -> Self:
        """Parse a header value into a descriptor.

        Args:
            value: Raw header value.

        Returns:
            MediaType: The parsed descriptor.

        Raises:
            MediaTypeError: If the value is not ``media/subtype`` shaped.
        """
        try:
            raw_type, raw_params = parse_options_header(value)
        except (UnicodeError, ValueError, AssertionError) as exc:
            raise MediaTypeError(value, exc) from exc

        full_type = raw_type.decode("latin-1").strip().lower()
        media, slash, subtype = full_type.partition("/")
        if not slash or not media or not subtype or "/" in subtype:
            raise MediaTypeError(value)

        protocol, plus, suffix = full_type.partition("+")
        if plus and not suffix:
            raise MediaTypeError(value)

        params = {
            key.decode("latin-1").lower(): val.decode("latin-1")
            for key, val in raw_params.items()
        }
        return cls(
            type=full_type,
            media=media,
            subtype=subtype,
            protocol=protocol,
            suffix=suffix or None,
            params=params,
        )

    @classmethod
    def parse_accept(cls, value: str) -> list[Self]:
        """Parse an Accept header into descriptors, most preferred first.

        Malformed entries and entries with ``q=0`` are dropped. Ties keep
        header order.

        Args:
            value: Raw Accept header value.

        Returns:
            list[MediaType]: Acceptable media types ordered by quality.
        """
        ranked: list[tuple[float, Self]] = []
        for entry in value.split(","):
            if not entry.strip():
                continue
            try:
                media_type = cls.parse(entry)
            except MediaTypeError:
                continue
            try:
                quality = float(media_type.params.get("q", "1"))
            except ValueError:
                continue
            if quality > 0:
                ranked.append((quality, media_type))

        ranked.sort(key=lambda item: item[0], reverse=True)
        return [media_type for _, media_type in ranked]

    @property
    def kinds(self) -> tuple[str, ...]:
        """tuple[str, ...]: Codec lookup keys, subtype first, then suffix."""
        if self.suffix:
            return (self.subtype, self.suffix)
        return (self.subtype,)

    @property
    def is_wildcard(self) -> bool:
        """bool: True for ``*/*`` and ``media/*`` ranges."""
        return self.subtype == WILDCARD

    def matches(self, kind: str) -> bool:
        """Check a declared kind (``json``) or full type against this descriptor.

        Args:
            kind: A subtype, a suffix, or a full ``media/subtype`` type.

        Returns:
            bool: True if ``kind`` names this media type.
        """
        kind = kind.lower()
        return kind == self.type or kind in self.kinds

    def __str__(self) -> str:
        return self.type
