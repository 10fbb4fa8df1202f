"""
Order annotator.

Records design links on an order: appends one note line per link under a
heading and adds the marker tag plus classification tags, in one combined
mutation.

Note line format:
    single custom item:   "#1001-https://.../design.zip;"
    several custom items: "#1001-2/3-https://.../design.zip;"
"""

from typing import Iterable, Optional
import structlog

from config import settings
from exceptions import ValidationError
from models.fulfillment import (
    AnnotationOutcome,
    AnnotationStatus,
    AnnotationUpdate,
    ResultLink,
)
from utils.text_utils import split_variant_title

logger = structlog.get_logger(__name__)

LIVE_NOTE_HEADING = "--- Custom Design Files ---"
RECOVERY_NOTE_HEADING = "--- Custom Design Files (Manual Recovery) ---"
NOTE_SEPARATOR = "\n\n"


def format_link_line(link: ResultLink) -> str:
    """Format one note line; single-item orders omit the index/total counter."""
    if link.total_custom_items > 1:
        return f"{link.order_name}-{link.item_index}/{link.total_custom_items}-{link.artifact_url};"
    return f"{link.order_name}-{link.artifact_url};"


def compose_note(current_note: Optional[str], links: list[ResultLink], heading: str) -> str:
    """Existing note (if any), a blank line, the heading, then one line per link."""
    block = heading + "\n" + "\n".join(format_link_line(link) for link in links)
    if current_note:
        return current_note + NOTE_SEPARATOR + block
    return block


def classification_tag(variant_title: Optional[str], call_sign: str) -> str:
    """
    Tag describing one customization: "{color}/{size}/{call_sign}".

    - ("White / 2XL", "N1ABC") → "White/2XL/N1ABC"
    """
    color, size = split_variant_title(variant_title)
    return f"{color}/{size}/{call_sign}"


def _unique(tags: Iterable[str]) -> list[str]:
    seen = set()
    ordered = []
    for tag in tags:
        if tag and tag not in seen:
            seen.add(tag)
            ordered.append(tag)
    return ordered


class OrderAnnotator:
    """
    Applies AnnotationUpdates through the order platform client.

    Callers must check the marker tag before annotating; this class does
    not re-read order state.
    """

    def __init__(self, order_client, marker_tag: str = "has_custom_design"):
        self.order_client = order_client
        self.marker_tag = marker_tag

    def build_update(
        self,
        order_id: str,
        current_note: Optional[str],
        current_tags: Iterable[str],
        new_links: list[ResultLink],
        extra_tags: Iterable[str] = (),
        derived_tags: Iterable[str] = (),
        heading: str = LIVE_NOTE_HEADING
    ) -> AnnotationUpdate:
        """
        Build the combined tag + note change.

        Tags already on the order are not re-sent.
        """
        present = set(current_tags or [])
        tags = _unique([self.marker_tag, *derived_tags, *extra_tags])

        return AnnotationUpdate(
            order_id=order_id,
            tags_to_add=[tag for tag in tags if tag not in present],
            note=compose_note(current_note, new_links, heading),
        )

    def annotate(
        self,
        order_id: str,
        current_note: Optional[str],
        current_tags: Iterable[str],
        new_links: list[ResultLink],
        extra_tags: Iterable[str] = (),
        derived_tags: Iterable[str] = (),
        heading: str = LIVE_NOTE_HEADING
    ) -> AnnotationOutcome:
        """
        Append links to the order note and add tags.

        Args:
            order_id: Order GID
            current_note: Note as currently stored on the order
            current_tags: Tags currently on the order
            new_links: Links to record (at least one)
            extra_tags: Caller tags, e.g. the manual recovery marker
            derived_tags: Per-customization classification tags
            heading: Heading line of the appended block

        Returns:
            AnnotationOutcome with tag and note errors reported separately

        Raises:
            ValidationError: If there are no links to record
            OrderMutationFailedError: If the request itself failed
        """
        if not new_links:
            raise ValidationError(
                code="NO_LINKS_TO_ANNOTATE",
                message="Annotation requires at least one design link",
                details={"order_id": order_id}
            )

        update = self.build_update(
            order_id=order_id,
            current_note=current_note,
            current_tags=current_tags,
            new_links=new_links,
            extra_tags=extra_tags,
            derived_tags=derived_tags,
            heading=heading,
        )

        logger.info(
            "annotating_order",
            order_id=order_id,
            links=len(new_links),
            tags=update.tags_to_add
        )

        errors = self.order_client.add_tags_and_update_note(
            order_id, update.tags_to_add, update.note
        )
        tags_errors = errors.get("tags_errors") or []
        note_errors = errors.get("note_errors") or []

        if tags_errors and note_errors:
            status = AnnotationStatus.FAILED
        elif tags_errors:
            status = AnnotationStatus.TAGS_FAILED
        elif note_errors:
            status = AnnotationStatus.NOTE_FAILED
        else:
            status = AnnotationStatus.APPLIED

        if status == AnnotationStatus.APPLIED:
            logger.info("order_annotated", order_id=order_id)
        else:
            logger.error(
                "order_annotation_rejected",
                order_id=order_id,
                status=status.value,
                tags_errors=tags_errors,
                note_errors=note_errors
            )

        return AnnotationOutcome(
            status=status,
            update=update,
            tags_errors=tags_errors,
            note_errors=note_errors,
        )


def build_order_annotator(order_client) -> OrderAnnotator:
    """Create an annotator from application settings."""
    return OrderAnnotator(order_client, marker_tag=settings.marker_tag)
