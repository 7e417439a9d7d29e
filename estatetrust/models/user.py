from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from estatetrust.core import ids
from estatetrust.models.base import Base, AuditMixin


ROLES = ("user", "agent", "admin")


class User(AuditMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: ids.gen_id(ids.USER))

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)

    # "user" | "agent" | "admin"
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
