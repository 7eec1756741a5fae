"""
Company and bank account database models.

Companies place pickups; a company may settle through a linked bank account.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


class BankAccount(Base):
    """Bank account a company settles through."""
    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    account_number = Column(String(50), unique=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<BankAccount(id={self.id}, account_number='{self.account_number}')>"


class Company(Base):
    """
    Company model.

    Created on first order (find-or-create by name). Never deleted while
    pickups reference it.
    """
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)

    # Settlement arrangement
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=True)

    # Null means "use the global LOAN_FINANCED_DISPATCH setting"
    allow_loan_financed_dispatch = Column(Boolean, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"
