"""CoolLibrary - library management API

This package contains:
- HTTP API endpoints (api.py)
- Loan request workflow (loans.py)
- Authentication and tokens (auth.py)
- Data models and repositories (models.py, repositories.py)
- Database layer (database.py)
- CLI interface (cli.py)
"""
