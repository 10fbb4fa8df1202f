"""
Template resolver.

Maps a line item's product title and variant descriptor to the key of its
template bundle in the templates bucket.

Key shape: {NORMALIZED_TITLE}{_FOR_LIGHT|_FOR_DARK}.zip

The hyphen rule is the part that has changed between revisions of the
bucket layout, so it lives in a versioned NamingConvention selected by
configuration:

    v1  no escaping             "Classic T-Shirt" -> CLASSIC_T-SHIRT
    v2  listed words escaped    "Classic T-Shirt" -> CLASSIC_T--SHIRT
    v3  every hyphen doubled    "Long-Sleeve Tee" -> LONG--SLEEVE_TEE
"""

from dataclasses import dataclass
from typing import Optional
import re
import structlog

from config import settings
from exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

WORD_SEPARATOR = "_"
LIGHT_SUFFIX = "_FOR_LIGHT"
DARK_SUFFIX = "_FOR_DARK"
BUNDLE_EXTENSION = ".zip"


@dataclass(frozen=True)
class NamingConvention:
    """One revision of the template key naming rules."""
    version: str
    escape_all_hyphens: bool = False
    escaped_tokens: tuple[str, ...] = ()
    light_suffix: str = LIGHT_SUFFIX
    dark_suffix: str = DARK_SUFFIX
    extension: str = BUNDLE_EXTENSION

    def escape_token(self, token: str) -> str:
        """Apply the hyphen rule to one uppercased title token."""
        if self.escape_all_hyphens:
            return token.replace("-", "--")
        for escaped in self.escaped_tokens:
            token = token.replace(escaped, escaped.replace("-", "--"))
        return token


NAMING_CONVENTIONS: dict[str, NamingConvention] = {
    "v1": NamingConvention(version="v1"),
    "v2": NamingConvention(version="v2", escaped_tokens=("T-SHIRT",)),
    "v3": NamingConvention(version="v3", escape_all_hyphens=True),
}


def get_naming_convention(version: str) -> NamingConvention:
    """
    Look up a naming convention by version.

    Raises:
        ConfigurationError: If the version is unknown
    """
    convention = NAMING_CONVENTIONS.get(version)
    if convention is None:
        raise ConfigurationError(
            message=f"Unknown template naming convention: {version}",
            details={"version": version, "known": sorted(NAMING_CONVENTIONS)}
        )
    return convention


class TemplateResolver:
    """
    Resolves template bundle keys.

    Pure: same (title, variant) always yields the same key for a given
    convention and marker list.
    """

    def __init__(
        self,
        convention: NamingConvention,
        light_markers: Optional[list[str]] = None
    ):
        self.convention = convention
        markers = light_markers if light_markers is not None else ["white", "golden yellow"]
        self.light_markers = tuple(marker.lower() for marker in markers if marker)

    def normalize_title(self, title: str) -> str:
        """
        Normalize a product title into the key stem.

        - Uppercases
        - Collapses whitespace runs and trims the ends
        - Escapes hyphens per the naming convention
        - Joins tokens with underscores

        Args:
            title: Product title, e.g. "Classic  Cap"

        Returns:
            Key stem, e.g. "CLASSIC_CAP"
        """
        if not title:
            return ""

        tokens = re.split(r"\s+", title.strip().upper())
        return WORD_SEPARATOR.join(
            self.convention.escape_token(token) for token in tokens if token
        )

    def is_light_variant(self, variant_descriptor: Optional[str]) -> bool:
        """Check whether the variant calls for the light-background template."""
        if not variant_descriptor:
            return False
        variant = variant_descriptor.lower()
        return any(marker in variant for marker in self.light_markers)

    def resolve(self, title: str, variant_descriptor: Optional[str]) -> str:
        """
        Compute the template bundle key.

        Args:
            title: Product title
            variant_descriptor: Variant title, e.g. "White / L"

        Returns:
            Template key, e.g. "CLASSIC_CAP_FOR_LIGHT.zip"
        """
        suffix = (
            self.convention.light_suffix
            if self.is_light_variant(variant_descriptor)
            else self.convention.dark_suffix
        )
        key = f"{self.normalize_title(title)}{suffix}{self.convention.extension}"

        logger.debug(
            "template_key_resolved",
            title=title,
            variant=variant_descriptor,
            convention=self.convention.version,
            template_key=key
        )
        return key


def build_template_resolver() -> TemplateResolver:
    """Create a resolver from application settings."""
    return TemplateResolver(
        convention=get_naming_convention(settings.template_naming_convention),
        light_markers=settings.template_light_markers,
    )
