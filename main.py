"""
Entry point for running the API from a source checkout.

Verifies the database, bootstraps the schema and starts uvicorn on
$PORT (default 3000). Exits with status 1 if startup fails.

    python main.py
"""

from users_api.server import main


if __name__ == "__main__":
    main()
