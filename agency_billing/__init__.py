"""Agency billing service: quotations, invoices and printable documents."""
__version__ = "1.0.0"
