"""
A simple CLI for running the service.
"""

import os
import sys

import uvicorn


def run_server(**kwargs):
    for k, v in kwargs.items():
        os.environ[k] = v

    uvicorn.run("groupmod.api.app:app", host="0.0.0.0")


def main():
    try:
        run = sys.argv[1] == "run"
        dev = sys.argv[2] == "dev"
        prod = sys.argv[2] == "prod"
    except IndexError:
        print("Only supported commands are groupmod run dev and groupmod run prod")
        exit(1)

    if not run or not (dev or prod):
        print("Only supported commands are groupmod run dev and groupmod run prod")
        exit(1)

    if dev:
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer() as container:
            print(
                f"Container details: username={container.username}, password={container.password}, port={container.get_exposed_port(container.port)}"
            )

            # A handful of development users; override with
            # GROUPMOD_KNOWN_USER_IDS.
            run_server(
                GROUPMOD_DATABASE_TYPE="postgres",
                GROUPMOD_DATABASE_USER=container.username,
                GROUPMOD_DATABASE_PASSWORD=container.password,
                GROUPMOD_DATABASE_PORT=str(container.get_exposed_port(container.port)),
                GROUPMOD_DATABASE_HOST="localhost",
                GROUPMOD_DATABASE_DB=container.dbname,
                GROUPMOD_DATABASE_ECHO="False",
                GROUPMOD_CREATE_TABLES="True",
                GROUPMOD_KNOWN_USER_IDS=os.environ.get(
                    "GROUPMOD_KNOWN_USER_IDS", '["alice", "bob", "carol", "dave"]'
                ),
            )

    if prod:
        run_server()
