"""Row-level tenant isolation enforced through SQLAlchemy session events.

Every mapped table that has a ``tenant_id`` column (apart from the
cross-tenant tables in EXCLUDED_TABLES) is filtered to the session's tenant
context:

* SELECT gets ``tenant_id = :ctx`` through with_loader_criteria, so joins,
  aliases, subqueries, EXISTS clauses and lazy loads are covered too.
* ORM-enabled bulk UPDATE / DELETE get the same WHERE clause.
* INSERT (flush) stamps ``tenant_id`` from the context.
* UPDATE (flush) refuses to change ``tenant_id`` on a persistent row.

The tenant context lives in ``session.info["tenant_id"]`` and can be
overridden per statement with ``execution_options(tenant_id=...)``.
System code that must cross tenants sets ``bypass_tenant`` on the session
(see database.system_session) or per statement; it is honoured only while
TENANT_ALLOW_BYPASS is on.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional
from uuid import UUID

from sqlalchemy import event, inspect
from sqlalchemy.orm import Mapper, ORMExecuteState, Session, with_loader_criteria
from sqlalchemy.sql import operators, visitors
from sqlalchemy.sql.elements import BinaryExpression, BindParameter, ColumnClause

from ..config import get_settings
from ..errors import TenantContextError, TenantImmutableError
from ..observability.metrics import tenant_isolation_violations_total

logger = logging.getLogger(__name__)

TENANT_COLUMN = "tenant_id"

# Tables that are cross-tenant by nature (identity, auth artifacts, the
# tenant master itself, and the access-grant tables that are consulted
# before any tenant context exists).
EXCLUDED_TABLES = frozenset({
    "user_tenants",
    "user_company_roles",
    "refresh_tokens",
    "login_attempts",
    "email_verifications",
    "password_resets",
    "users",
    "tenants",
    "subscriptions",
})


def is_tenant_scoped(mapper: Mapper) -> bool:
    """True if rows of this mapper are subject to tenant isolation."""
    table = mapper.local_table
    if getattr(table, "name", None) in EXCLUDED_TABLES:
        return False
    return TENANT_COLUMN in table.c


def get_tenant_context(session: Session, execution_options: Optional[Mapping[str, Any]] = None) -> Optional[UUID]:
    if execution_options and execution_options.get("tenant_id") is not None:
        return _as_uuid(execution_options["tenant_id"])
    value = session.info.get("tenant_id")
    return _as_uuid(value) if value is not None else None


def set_tenant_context(session: Session, tenant_id) -> Session:
    """Bind a session to a tenant. Returns the session for chaining."""
    session.info["tenant_id"] = _as_uuid(tenant_id)
    return session


@contextmanager
def tenant_context(session: Session, tenant_id) -> Iterator[Session]:
    """Temporarily bind a session to a tenant, restoring the previous binding.

    Writes inside the block must be flushed before it exits, since the
    flush hook stamps tenant_id from whatever context is current at flush.
    """
    previous = session.info.get("tenant_id")
    set_tenant_context(session, tenant_id)
    try:
        yield session
    finally:
        if previous is None:
            session.info.pop("tenant_id", None)
        else:
            session.info["tenant_id"] = previous


def _as_uuid(value) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _bypass_allowed(session: Session, execution_options: Optional[Mapping[str, Any]] = None) -> bool:
    requested = bool(session.info.get("bypass_tenant"))
    if execution_options and execution_options.get("bypass_tenant"):
        requested = True
    return requested and get_settings().TENANT_ALLOW_BYPASS


def _handle_missing_context(operation: str, tables: list[str], bypass: bool) -> None:
    """Apply the configured policy for a scoped statement without context."""
    if bypass:
        return

    cfg = get_settings()
    if cfg.TENANT_STRICT_MODE:
        tenant_isolation_violations_total.labels(operation=operation).inc()
        raise TenantContextError(
            f"TENANT_CONTEXT_REQUIRED: Cannot {operation} without tenant context"
        )

    if cfg.TENANT_LOG_WARNINGS:
        logger.warning(
            f"Tenant-scoped {operation} without tenant context",
            extra={"tables": tables, "operation": operation}
        )


def statement_mappers(statement) -> set:
    """Every mapper referenced anywhere in the statement.

    ORMExecuteState.all_mappers only lists the top-level entities; tables
    reached through subqueries, EXISTS or scalar selects are found through
    the ORM annotations on their columns and FROM elements.
    """
    found = set()
    for element in visitors.iterate(statement):
        entity = getattr(element, "_annotations", {}).get("parententity")
        if entity is not None:
            found.add(entity.mapper)
    return found


def has_tenant_filter(statement, tenant_id: UUID) -> bool:
    """True if the statement's WHERE clause already pins tenant_id to tenant_id.

    Only ``tenant_id = <bound value>`` comparisons against the same tenant
    count; a filter on some other tenant still gets the context criteria
    added (and therefore matches nothing).
    """
    where = getattr(statement, "whereclause", None)
    if where is None:
        return False

    for element in visitors.iterate(where):
        if not isinstance(element, BinaryExpression) or element.operator is not operators.eq:
            continue
        sides = (element.left, element.right)
        column_side = next(
            (s for s in sides if isinstance(s, ColumnClause) and s.name == TENANT_COLUMN), None
        )
        if column_side is None:
            continue
        for side in sides:
            if isinstance(side, BindParameter) and side.value is not None:
                if str(side.value) == str(tenant_id):
                    return True
    return False


@event.listens_for(Session, "do_orm_execute")
def apply_tenant_criteria(orm_execute_state: ORMExecuteState) -> None:
    """Scope ORM SELECT / UPDATE / DELETE statements to the tenant context."""
    if not (orm_execute_state.is_select or orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    # Column and relationship loads inherit criteria from the parent query.
    if orm_execute_state.is_column_load or orm_execute_state.is_relationship_load:
        return

    top_level = {m for m in orm_execute_state.all_mappers if is_tenant_scoped(m)}
    nested = {
        m for m in statement_mappers(orm_execute_state.statement)
        if is_tenant_scoped(m) and m not in top_level
    }
    scoped = sorted(top_level | nested, key=lambda m: m.local_table.name)
    if not scoped:
        return

    if orm_execute_state.is_select:
        operation = "query"
    elif orm_execute_state.is_update:
        operation = "update"
    else:
        operation = "delete"

    session = orm_execute_state.session
    options = orm_execute_state.execution_options

    # A per-statement bypass wins over the session's tenant context.
    if options.get("bypass_tenant") and get_settings().TENANT_ALLOW_BYPASS:
        return

    tenant_id = get_tenant_context(session, options)

    if tenant_id is None:
        _handle_missing_context(
            operation,
            [m.local_table.name for m in scoped],
            _bypass_allowed(session, options),
        )
        return

    statement = orm_execute_state.statement
    # An explicit filter on the context tenant only covers the outer query.
    if not nested and has_tenant_filter(statement, tenant_id):
        return

    if orm_execute_state.is_select:
        criteria_mappers = scoped
    else:
        for mapper in sorted(top_level, key=lambda m: m.local_table.name):
            statement = statement.where(mapper.local_table.c.tenant_id == tenant_id)
        criteria_mappers = sorted(nested, key=lambda m: m.local_table.name)

    # Criteria are registered for the whole compilation, so they also
    # render inside subqueries and EXISTS clauses that use the entity.
    for mapper in criteria_mappers:
        statement = statement.options(
            with_loader_criteria(
                mapper.class_,
                lambda cls: cls.tenant_id == tenant_id,
                include_aliases=True,
            )
        )

    orm_execute_state.statement = statement


@event.listens_for(Session, "before_flush")
def enforce_tenant_on_flush(session: Session, flush_context, instances) -> None:
    """Stamp tenant_id on new rows and keep it immutable on existing ones."""
    tenant_id = get_tenant_context(session)

    for instance in session.new:
        state = inspect(instance)
        if not is_tenant_scoped(state.mapper):
            continue

        if tenant_id is not None:
            instance.tenant_id = tenant_id
            continue

        # System provisioning may insert rows that already name their tenant.
        if _bypass_allowed(session) and instance.tenant_id is not None:
            continue

        tenant_isolation_violations_total.labels(operation="insert").inc()
        raise TenantContextError("TENANT_CONTEXT_REQUIRED: Cannot create without tenant context")

    for instance in session.dirty:
        state = inspect(instance)
        if not is_tenant_scoped(state.mapper):
            continue

        history = state.attrs[TENANT_COLUMN].history
        if history.added and any(old is not None for old in history.deleted):
            tenant_isolation_violations_total.labels(operation="tenant_change").inc()
            raise TenantImmutableError("FORBIDDEN: Cannot modify tenant_id after creation")


class TenantScope:
    """Reusable ``tenant_id = :tenant`` filter for explicit queries.

    The isolation hook recognises this filter and does not add a second one.

    Example:
        scope = TenantScope(tenant_id)
        stmt = scope.apply(select(Warehouse), Warehouse)
        stmt = select(Company).where(scope(Company), Company.is_active.is_(True))
    """

    def __init__(self, tenant_id):
        self.tenant_id = _as_uuid(tenant_id)

    def __call__(self, model):
        return model.tenant_id == self.tenant_id

    def apply(self, statement, model):
        return statement.where(self(model))

    def __repr__(self):
        return f"<TenantScope(tenant_id={self.tenant_id})>"
