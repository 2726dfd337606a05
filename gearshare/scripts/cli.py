"""
A simple CLI for running the GearShare API.
"""

import os
import sys
import time
from multiprocessing import Process

import uvicorn


def run_server(host: str, port: int, **kwargs):
    for k, v in kwargs.items():
        os.environ[k] = v

    uvicorn.run("gearshare.api.app:app", host=host, port=port)


def main():
    try:
        command = sys.argv[1]
        run = command == "run"
        setup = command == "setup"
        dev = run and sys.argv[2] == "dev"
        prod = run and sys.argv[2] == "prod"
    except IndexError:
        print("Only supported commands are gearshare run dev, gearshare run prod, or gearshare setup")
        exit(1)

    from gearshare.config.settings import Settings

    settings = Settings()

    if dev:
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer() as container:
            print(
                f"Container details: username={container.username}, password={container.password}, port={container.get_exposed_port(container.port)}"
            )

            environment = {
                "GEARSHARE_DATABASE_TYPE": "postgres",
                "GEARSHARE_DATABASE_USER": container.username,
                "GEARSHARE_DATABASE_PASSWORD": container.password,
                "GEARSHARE_DATABASE_PORT": str(container.get_exposed_port(container.port)),
                "GEARSHARE_DATABASE_HOST": "localhost",
                "GEARSHARE_DATABASE_DB": container.dbname,
                "GEARSHARE_DATABASE_ECHO": "False",
                "GEARSHARE_CREATE_TABLES": "True",
            }

            background_process = Process(
                target=run_server,
                args=(settings.hostname, settings.port),
                kwargs=environment,
            )
            background_process.start()

            try:
                while background_process.is_alive():
                    time.sleep(1)
            except KeyboardInterrupt:
                background_process.terminate()
                background_process.join()
    elif prod:
        run_server(settings.hostname, settings.port)
    elif setup:
        settings.sync_manager().create_all()

        print("Setup complete, please restart the container or application")
        exit(0)
    else:
        print("Only supported commands are gearshare run dev, gearshare run prod, or gearshare setup")
        exit(1)
