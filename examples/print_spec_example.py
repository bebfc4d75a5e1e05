#!/usr/bin/env python3
"""
Print the OpenAPI document of the users example without starting a server.

Run with:
    python examples/print_spec_example.py
"""

import json

from users_server_example import create_users_app


if __name__ == "__main__":
    app = create_users_app()
    print(json.dumps(app.spec, indent=2))
