"""Keyword-based transaction categorization"""

from typing import Dict, List, Tuple

from revenue_sync.domain.models import TransactionCategory, TransactionType

# First matching rule wins; order matters for overlapping keywords
CREDIT_RULES: List[Tuple[Tuple[str, ...], TransactionCategory]] = [
    (("pos", "sale", "purchase"), TransactionCategory.POS_SALE),
    (("interest", "dividend"), TransactionCategory.INTEREST),
]

DEBIT_RULES: List[Tuple[Tuple[str, ...], TransactionCategory]] = [
    (("salary", "payroll", "wage"), TransactionCategory.SALARY),
    (("rent",), TransactionCategory.RENT),
    (("electric", "water", "utility", "bill"), TransactionCategory.UTILITIES),
    (("supplier", "vendor", "inventory"), TransactionCategory.SUPPLIER_PAYMENT),
    (("tax", "vat", "duty"), TransactionCategory.TAX),
    (("equipment", "machine"), TransactionCategory.EQUIPMENT),
    (("marketing", "advertising", "promo"), TransactionCategory.MARKETING),
    (("insurance",), TransactionCategory.INSURANCE),
    (("fee", "charge"), TransactionCategory.FEE),
    (("withdrawal", "atm"), TransactionCategory.WITHDRAWAL),
    (("transfer",), TransactionCategory.TRANSFER),
]

CATEGORY_DISPLAY_NAMES: Dict[TransactionCategory, str] = {
    TransactionCategory.SALES: "Sales Revenue",
    TransactionCategory.POS_SALE: "POS Sale",
    TransactionCategory.TRANSFER: "Transfer",
    TransactionCategory.WITHDRAWAL: "Withdrawal",
    TransactionCategory.SUPPLIER_PAYMENT: "Supplier Payment",
    TransactionCategory.SALARY: "Salary/Wages",
    TransactionCategory.RENT: "Rent",
    TransactionCategory.UTILITIES: "Utilities",
    TransactionCategory.TAX: "Tax Payment",
    TransactionCategory.INVENTORY: "Inventory Purchase",
    TransactionCategory.EQUIPMENT: "Equipment",
    TransactionCategory.MARKETING: "Marketing",
    TransactionCategory.INSURANCE: "Insurance",
    TransactionCategory.INTEREST: "Interest",
    TransactionCategory.FEE: "Bank Fees",
    TransactionCategory.OTHER: "Other",
    TransactionCategory.UNCATEGORIZED: "Uncategorized",
}


def categorize_transaction(transaction_type: TransactionType, description: str) -> TransactionCategory:
    """
    Assign a category from the transaction direction and description keywords.

    Credits default to SALES, debits to OTHER, so a categorized transaction
    is never left UNCATEGORIZED.
    """
    desc = (description or "").lower()

    if transaction_type == TransactionType.CREDIT:
        rules, default = CREDIT_RULES, TransactionCategory.SALES
    else:
        rules, default = DEBIT_RULES, TransactionCategory.OTHER

    for keywords, category in rules:
        if any(keyword in desc for keyword in keywords):
            return category

    return default


def get_category_display_name(category: TransactionCategory) -> str:
    return CATEGORY_DISPLAY_NAMES.get(category, category.value)
