"""
HTTP routers for the lead import API: upload inspect/commit under
``lead_uploads`` and import job status under ``jobs``.
"""
