"""
Read-side query layer.

Submodules:
  pagination — page/size normalisation and ``Page`` / ``PaginationMeta``.
  stocks     — filtered, sorted stock list with latest-N actions per stock;
               stock detail, recommendations and filter options.
  overview   — aggregate market analytics.
"""
