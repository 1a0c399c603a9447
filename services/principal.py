# services/principal.py
"""
The acting principal and company-scope helpers.

Authentication and role resolution happen outside the billing engine; the
engine only receives an already-authorized principal and enforces company
isolation on every load.
"""
from dataclasses import dataclass
from typing import Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from services.errors import NotFoundError, PermissionDeniedError
from services.locking import for_update

PLATFORM_ROLE = "super_admin"

M = TypeVar("M")


@dataclass(frozen=True)
class Principal:
     user_id: int
     role: str
     company_id: Optional[int] = None

     @property
     def is_platform_operator(self) -> bool:
          return self.role == PLATFORM_ROLE

     def require_company(self) -> int:
          """Company this principal acts for; platform operators have none."""
          if self.company_id is None:
               raise PermissionDeniedError("principal must be associated with a company")
          return self.company_id

     def scope(self) -> Optional[int]:
          """Company filter for bulk queries; None means every company."""
          if self.is_platform_operator:
               return None
          return self.require_company()


def load_scoped(
     db: Session,
     principal: Principal,
     model: Type[M],
     entity_id: int,
     lock: bool = False,
     label: Optional[str] = None,
) -> M:
     """
     Fetch ``model`` by id inside the principal's company.

     Rows outside the scope are reported exactly like missing rows. With
     ``lock`` the row is read under an update lock (FOR UPDATE, or UPDLOCK on
     MS SQL Server).
     """
     stmt = select(model).where(model.id == entity_id)
     scope = principal.scope()
     if scope is not None:
          stmt = stmt.where(model.company_id == scope)
     if lock:
          stmt = for_update(stmt, model)
     entity = db.execute(stmt).scalar_one_or_none()
     if entity is None:
          raise NotFoundError(label or model.__name__.lower(), entity_id)
     return entity
