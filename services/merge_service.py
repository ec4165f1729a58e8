# -*- coding: utf-8 -*-
"""
Merge Service
=============
Applies a Merge resolution to the two sides of a duplicate conflict.

Each side is either a staged record of the conflict's package or an
authoritative entity:

- authoritative + authoritative: relink references, deactivate the discarded
- authoritative master, staged discarded: blank authoritative fields are
  filled from the staged record, which is then skipped and points at the master
- staged master, authoritative discarded: the authoritative entity takes the
  staged data; the staged record is skipped and points at it
- staged + staged: references inside the package are relinked to the master's
  original id and the discarded record is skipped

All writes go through the caller's transaction cursor; any failure raises
MergeException and the caller's transaction rolls back.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from models.conflict import Conflict
from models.staging import EntityKind, StagingRecord, ValidationStatus
from repositories.authoritative_repository import AuthoritativeStore
from repositories.staging_repository import StagingRepository
from services.entity_mapping import column_values, non_blank, staged_references_to
from services.exceptions import MergeException, NotFoundException, ValidationException
from utils.logger import get_logger

logger = get_logger(__name__)

ENTITY_KINDS = {
    "person": EntityKind.PERSON,
    "property_unit": EntityKind.PROPERTY_UNIT,
}


@dataclass
class MergeSide:
    """One side of a merge: a staged record or an authoritative entity id."""
    entity_id: str
    record: Optional[StagingRecord] = None

    @property
    def is_staged(self) -> bool:
        return self.record is not None


class MergeService:
    """Atomic merge of a duplicate pair."""

    def __init__(self, staging_repo: StagingRepository, store: AuthoritativeStore):
        self.staging_repo = staging_repo
        self.store = store

    def merge(self, conflict: Conflict, master_entity_id: str, user_id: str,
              cursor: Any) -> Dict[str, Any]:
        """
        Merge the non-master side of the conflict into the master.

        Returns:
            Merge mapping {absorbed_id: surviving_id, merge_type, master_entity_id,
            discarded_entity_id, references_updated}. A staged master never
            replaces an authoritative entity: the authoritative one survives.
        """
        if master_entity_id == conflict.first_entity_id:
            discarded_entity_id = conflict.second_entity_id
        elif master_entity_id == conflict.second_entity_id:
            discarded_entity_id = conflict.first_entity_id
        else:
            raise ValidationException(
                f"Master entity {master_entity_id} is not part of conflict {conflict.conflict_number}",
                field="master_entity_id"
            )

        kind = ENTITY_KINDS[conflict.entity_type]
        try:
            master = self._side(conflict, kind, master_entity_id, cursor)
            discarded = self._side(conflict, kind, discarded_entity_id, cursor)

            # survivor keeps its id; absorbed is the id traced to it
            survivor, absorbed = master, discarded
            if master.is_staged and discarded.is_staged:
                merge_type = "staged_into_staged"
                references = self._relink_staged(conflict.import_package_id, kind, discarded, master, cursor)
                self._skip(discarded.record, f"Merged into {master.entity_id}", None, cursor)
            elif discarded.is_staged:
                merge_type = "staged_into_authoritative"
                references = {}
                self._fill_gaps(kind, master.entity_id, discarded.record, user_id, cursor)
                self._skip(discarded.record, f"Merged into {master.entity_id}", master.entity_id, cursor)
            elif master.is_staged:
                # The authoritative entity survives and takes the staged values
                merge_type = "authoritative_updated_from_staged"
                survivor, absorbed = discarded, master
                references = {}
                self._update_from_staged(kind, discarded.entity_id, master.record, user_id, cursor)
                self._skip(master.record, f"Merged into {discarded.entity_id}", discarded.entity_id, cursor)
            else:
                merge_type = "authoritative_into_authoritative"
                references = self.store.relink_references(kind, discarded.entity_id, master.entity_id, cursor=cursor)
                self.store.deactivate(kind, discarded.entity_id, master.entity_id, user_id, cursor=cursor)
        except NotFoundException:
            raise
        except Exception as e:
            logger.error(f"Merge failed for conflict {conflict.conflict_number}: {e}")
            raise MergeException(
                f"Could not merge {discarded_entity_id} into {master_entity_id}: {e}",
                master_entity_id=master_entity_id,
                discarded_entity_id=discarded_entity_id,
                original_error=e
            ) from e

        logger.info(
            f"Merged {kind.value} {absorbed.entity_id} into {survivor.entity_id} ({merge_type})"
        )
        return {
            absorbed.entity_id: survivor.entity_id,
            "merge_type": merge_type,
            "master_entity_id": survivor.entity_id,
            "discarded_entity_id": absorbed.entity_id,
            "references_updated": references,
        }

    def _side(self, conflict: Conflict, kind: EntityKind, entity_id: str, cursor: Any) -> MergeSide:
        """
        Locate one side of the pair.

        Within-batch conflicts hold two staged ids; cross-batch conflicts hold
        the staged id first and the authoritative id second. A staged record
        that has already been committed is treated as its authoritative entity.
        """
        staged_side = conflict.conflict_type.is_within_batch or entity_id == conflict.first_entity_id
        if staged_side:
            record = self.staging_repo.get_by_original_id(
                conflict.import_package_id, kind, entity_id, cursor=cursor
            )
            if record is None:
                raise NotFoundException(
                    f"Staged {kind.label} {entity_id} not found",
                    entity_type=kind.value, entity_id=entity_id
                )
            if record.metadata.is_committed and record.status != ValidationStatus.SKIPPED:
                return MergeSide(entity_id=record.metadata.committed_entity_id)
            return MergeSide(entity_id=entity_id, record=record)

        if self.store.get(kind, entity_id, cursor=cursor) is None:
            raise NotFoundException(
                f"{kind.label} {entity_id} not found", entity_type=kind.value, entity_id=entity_id
            )
        return MergeSide(entity_id=entity_id)

    def _relink_staged(self, package_id: str, kind: EntityKind, discarded: MergeSide,
                       master: MergeSide, cursor: Any) -> Dict[str, int]:
        """Point package records that reference the discarded original id at the master."""
        updated = {}
        for referencing_kind, payload_field in staged_references_to(kind):
            count = 0
            for record in self.staging_repo.get_by_package(package_id, referencing_kind, cursor=cursor):
                if record.ref(payload_field) == discarded.entity_id:
                    record.payload[payload_field] = master.entity_id
                    self.staging_repo.update(record, cursor=cursor)
                    count += 1
            updated[f"{referencing_kind.value}.{payload_field}"] = count
        return updated

    def _update_from_staged(self, kind: EntityKind, entity_id: str, record: StagingRecord,
                            user_id: str, cursor: Any) -> None:
        existing = self.store.get(kind, entity_id, cursor=cursor)
        values = column_values(kind, record.payload, building_code=existing.get("building_code"))
        data = dict(existing.get("data") or {})
        data.update(non_blank(record.payload))
        self.store.update(kind, entity_id, non_blank(values), data, user_id, cursor=cursor)

    def _fill_gaps(self, kind: EntityKind, entity_id: str, record: StagingRecord,
                   user_id: str, cursor: Any) -> None:
        """Copy staged values into columns and payload keys the authoritative entity left blank."""
        existing = self.store.get(kind, entity_id, cursor=cursor)
        values = non_blank(column_values(kind, record.payload, building_code=existing.get("building_code")))
        gaps = {col: value for col, value in values.items() if existing.get(col) in (None, "")}
        data = dict(existing.get("data") or {})
        filled = {key: value for key, value in non_blank(record.payload).items() if data.get(key) in (None, "")}
        if not gaps and not filled:
            return
        data.update(filled)
        self.store.update(kind, entity_id, gaps, data, user_id, cursor=cursor)

    def _skip(self, record: StagingRecord, reason: str, committed_entity_id: Optional[str],
              cursor: Any) -> None:
        record.metadata.mark_as_skipped(reason)
        if committed_entity_id:
            record.metadata.set_committed_entity_id(committed_entity_id)
        self.staging_repo.update(record, cursor=cursor)
