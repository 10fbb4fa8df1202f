"""
Archive repackager.

Template bundles are zip files holding one templatable raster (matched by a
name pattern, e.g. ".../template.png") plus sibling files such as print
guides or mockups. The finished design archive carries every sibling
through byte-for-byte and stores the composited raster under one fixed
entry name, so downstream consumers never depend on the source naming.
"""

from io import BytesIO
from typing import Optional
import re
import zipfile
import structlog

from config import settings
from exceptions import AssetCorruptError, TemplateAssetMissingError

logger = structlog.get_logger(__name__)

DEFAULT_TEMPLATE_PATTERN = r"template\.png$"
DEFAULT_OUTPUT_NAME = "design.png"


class ArchiveRepackager:
    """Reads template bundles and writes design archives."""

    def __init__(
        self,
        template_pattern: str = DEFAULT_TEMPLATE_PATTERN,
        output_name: str = DEFAULT_OUTPUT_NAME
    ):
        self.template_pattern = re.compile(template_pattern)
        self.output_name = output_name

    def _open(self, bundle: bytes) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(BytesIO(bundle))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
            logger.error("template_bundle_decode_failed", error=str(e), size_bytes=len(bundle))
            raise AssetCorruptError("template bundle", str(e)) from e

    def _template_entries(self, archive: zipfile.ZipFile) -> list[zipfile.ZipInfo]:
        return [
            info for info in archive.infolist()
            if not info.is_dir() and self.template_pattern.search(info.filename)
        ]

    def _find_template(self, archive: zipfile.ZipFile) -> zipfile.ZipInfo:
        """
        Locate the templatable entry.

        Raises:
            TemplateAssetMissingError: If no entry matches
        """
        matches = self._template_entries(archive)

        if not matches:
            raise TemplateAssetMissingError(
                pattern=self.template_pattern.pattern,
                entries=archive.namelist()
            )

        if len(matches) > 1:
            logger.warning(
                "multiple_template_entries",
                using=matches[0].filename,
                matches=[info.filename for info in matches]
            )

        return matches[0]

    def _read(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> bytes:
        try:
            return archive.read(info)
        except (zipfile.BadZipFile, OSError, RuntimeError, NotImplementedError) as e:
            # RuntimeError: encrypted entry; NotImplementedError: unknown compression
            raise AssetCorruptError(f"bundle entry {info.filename}", str(e)) from e

    def extract_template(self, bundle: bytes) -> bytes:
        """
        Return the bytes of the templatable raster.

        Raises:
            AssetCorruptError: If the archive cannot be read
            TemplateAssetMissingError: If no entry matches the pattern
        """
        with self._open(bundle) as archive:
            info = self._find_template(archive)
            return self._read(archive, info)

    def repack(self, bundle: bytes, replacement_raster: bytes) -> bytes:
        """
        Build the design archive.

        Args:
            bundle: Template bundle (zip bytes)
            replacement_raster: Composited PNG

        Returns:
            Zip bytes: siblings unchanged + replacement under the output name

        Raises:
            AssetCorruptError: If the archive cannot be read
            TemplateAssetMissingError: If no entry matches the pattern
        """
        output = BytesIO()
        carried = 0

        with self._open(bundle) as source:
            self._find_template(source)
            dropped = {info.filename for info in self._template_entries(source)}

            with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as target:
                for info in source.infolist():
                    if info.filename in dropped:
                        continue
                    if info.filename == self.output_name:
                        logger.warning("bundle_entry_replaced", entry=info.filename)
                        continue
                    # Reusing the ZipInfo keeps path, timestamps and compression
                    target.writestr(info, self._read(source, info))
                    carried += 1

                target.writestr(self.output_name, replacement_raster)

        logger.debug(
            "bundle_repacked",
            carried_entries=carried,
            dropped_entries=sorted(dropped),
            output_entry=self.output_name
        )
        return output.getvalue()


def build_archive_repackager(
    template_pattern: Optional[str] = None,
    output_name: Optional[str] = None
) -> ArchiveRepackager:
    """Create a repackager from application settings."""
    return ArchiveRepackager(
        template_pattern=template_pattern or settings.template_entry_pattern,
        output_name=output_name or settings.design_entry_name,
    )
