"""
Business modules for the FBMS ledger: inventory, procurement and sales.

Modules hold domain data, ORM mappings and pure rules.  They import from
``fbms_kernel`` but never the reverse.
"""
