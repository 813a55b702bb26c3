"""
PDF report generation.
"""

from sentinel.reports.pdf import (
    CTRTemplateService,
    TemplateNotFoundError,
    fill_form,
    format_currency,
    generate_patron_report,
)

__all__ = [
    "CTRTemplateService",
    "TemplateNotFoundError",
    "fill_form",
    "format_currency",
    "generate_patron_report",
]
