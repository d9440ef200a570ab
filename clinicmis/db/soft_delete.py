# FILE: clinicmis/db/soft_delete.py
"""
Default ``WHERE NOT is_deleted`` predicate for every ORM SELECT.

Any mapped class using :class:`SoftDeleteMixin` is filtered, including
lazy/eager relationship loads. Pass the execution option
``include_deleted=True`` to see tombstoned rows (identifier generation,
audit screens)::

    db.query(Patient).execution_options(include_deleted=True)
"""
from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session, ORMExecuteState, with_loader_criteria

from clinicmis.models.mixins import SoftDeleteMixin

INCLUDE_DELETED = "include_deleted"


@event.listens_for(Session, "do_orm_execute")
def _exclude_soft_deleted(execute_state: ORMExecuteState) -> None:
    if (not execute_state.is_select or execute_state.is_column_load
            or execute_state.is_relationship_load):
        return
    if execute_state.execution_options.get(INCLUDE_DELETED, False):
        return
    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(
            SoftDeleteMixin,
            lambda cls: cls.is_deleted.is_(False),
            include_aliases=True,
        ))
