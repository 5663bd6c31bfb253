from sqlalchemy import Boolean, Column, Enum, Integer, String

from .base import Base
from riskwatch.risk.constants import OperatorRole, enum_values

ROLE_VALUES = enum_values(OperatorRole)


class Operator(Base):
    __tablename__ = "operators"

    id = Column(Integer, primary_key=True)
    username = Column(String(255), unique=True, nullable=False)
    role = Column(Enum(*ROLE_VALUES, name="operator_role", create_constraint=False), nullable=False, default="VIEWER")
    active = Column(Boolean, default=True, nullable=False)
