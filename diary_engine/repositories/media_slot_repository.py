"""Repository for the database columns that hold MediaReferences."""

import enum
from dataclasses import dataclass
from typing import List, Optional
from sqlalchemy.orm import Session

from diary_engine.models.diary import Child, DiaryPicture
from diary_engine.services.media_reference import Bucket


class SlotKind(str, enum.Enum):
    """Columns that store a photo reference."""
    CHILD_PHOTO = "child.photo_url"
    DIARY_PICTURE = "diary_picture.image_uri"


SLOT_BUCKETS = {
    SlotKind.CHILD_PHOTO: Bucket.PROFILES,
    SlotKind.DIARY_PICTURE: Bucket.IMAGES,
}


@dataclass(frozen=True)
class MediaSlot:
    """One populated photo column on one row."""
    kind: SlotKind
    row_id: int
    reference: str
    # child id for profile photos, diary entry id for diary pictures
    owner_id: Optional[int] = None
    
    @property
    def bucket(self) -> Bucket:
        return SLOT_BUCKETS[self.kind]


class MediaSlotRepository:
    """Enumerates and rewrites media references across both owning tables."""
    
    def __init__(self, db: Session):
        """Initialize repository with database session."""
        self.db = db
    
    def list_slots(self) -> List[MediaSlot]:
        """Every non-null, non-empty reference, profile photos first."""
        slots = []
        
        children = self.db.query(Child).filter(
            Child.photo_url.isnot(None),
            Child.photo_url != ""
        ).order_by(Child.id).all()
        for child in children:
            slots.append(MediaSlot(
                kind=SlotKind.CHILD_PHOTO,
                row_id=child.id,
                reference=child.photo_url,
                owner_id=child.id
            ))
        
        pictures = self.db.query(DiaryPicture).filter(
            DiaryPicture.image_uri.isnot(None),
            DiaryPicture.image_uri != ""
        ).order_by(DiaryPicture.id).all()
        for picture in pictures:
            slots.append(MediaSlot(
                kind=SlotKind.DIARY_PICTURE,
                row_id=picture.id,
                reference=picture.image_uri,
                owner_id=picture.diary_entry_id
            ))
        
        return slots
    
    def list_references(self) -> List[str]:
        """Distinct reference strings, in slot order."""
        seen = {}
        for slot in self.list_slots():
            seen.setdefault(slot.reference, None)
        return list(seen)
    
    def update_reference(self, slot: MediaSlot, new_reference: str) -> bool:
        """
        Point a slot at a new reference and commit.
        
        The update only applies if the row still holds the reference the slot
        was read with.
        
        Returns:
            True if the row was updated
        """
        if slot.kind is SlotKind.CHILD_PHOTO:
            updated = self.db.query(Child).filter(
                Child.id == slot.row_id,
                Child.photo_url == slot.reference
            ).update({"photo_url": new_reference}, synchronize_session=False)
        else:
            updated = self.db.query(DiaryPicture).filter(
                DiaryPicture.id == slot.row_id,
                DiaryPicture.image_uri == slot.reference
            ).update({"image_uri": new_reference}, synchronize_session=False)
        
        self.db.commit()
        return updated > 0
