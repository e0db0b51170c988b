"""GDPR Guard Celery worker package.

Modules
-------
scan_worker
    Recursive folder scan task wrapping
    :class:`~gdprguard.core.bulk_scanner.BulkFolderScanner`, and the report
    generation task wrapping :class:`~gdprguard.services.reports.GdprReportService`.
"""
