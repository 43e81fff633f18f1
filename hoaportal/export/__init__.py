"""Mini README: Export utilities for HOA member data.

Exposes the flattened member projection and the openpyxl workbook sink
that turns it into the downloadable ``HOA_Members.xlsx`` artefact.
"""

from .member_exporter import EXPORT_COLUMNS, MemberWorkbookExporter, export_members

__all__ = ["EXPORT_COLUMNS", "MemberWorkbookExporter", "export_members"]
