"""Pydantic schemas for analytics responses."""

from pydantic import BaseModel


class AnalyticsSummary(BaseModel):
    total_suppliers: int
    pending_suppliers: int
    approved_suppliers: int
    rejected_suppliers: int
    total_contracts: int
    active_contracts: int
    expiring_contracts: int
    total_payments_amount: int
    pending_payments_amount: int


class CountryCount(BaseModel):
    country: str
    count: int


class CategoryCount(BaseModel):
    category: str
    count: int


class ContractStatusBreakdown(BaseModel):
    status: str
    count: int
    value: int


class MonthlyAmount(BaseModel):
    month: str
    amount: int
