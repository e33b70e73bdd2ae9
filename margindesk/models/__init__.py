"""ORM model package."""

from margindesk.models.entities import (
    Allocation,
    AuditLog,
    Bill,
    BillLineItem,
    Client,
    Expense,
    FinancialPod,
    Holiday,
    IntegrationSettings,
    Leave,
    ManagerHistory,
    MonthlyUtilization,
    Person,
    PersonSalary,
    PodMembership,
    PodProjectMapping,
    Product,
    Project,
    ProjectCost,
    ResellingBillAllocation,
    ResellingInvoice,
    SyncLog,
    TimesheetEntry,
    TimesheetImportBatch,
    User,
)

__all__ = [
    "Allocation",
    "AuditLog",
    "Bill",
    "BillLineItem",
    "Client",
    "Expense",
    "FinancialPod",
    "Holiday",
    "IntegrationSettings",
    "Leave",
    "ManagerHistory",
    "MonthlyUtilization",
    "Person",
    "PersonSalary",
    "PodMembership",
    "PodProjectMapping",
    "Product",
    "Project",
    "ProjectCost",
    "ResellingBillAllocation",
    "ResellingInvoice",
    "SyncLog",
    "TimesheetEntry",
    "TimesheetImportBatch",
    "User",
]
