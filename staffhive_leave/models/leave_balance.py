from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from staffhive_leave.database import Base

class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type", "year", name="uq_leave_balance_employee_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    leave_type = Column(String, index=True, nullable=False) # catalog key, e.g. "annual", "sick"
    year = Column(Integer, nullable=False)
    allocated = Column(Integer, nullable=False, default=0)
    used = Column(Integer, nullable=False, default=0)
    pending = Column(Integer, nullable=False, default=0)
    current = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1) # bumped on every committed mutation
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
