#!/usr/bin/env python3
"""
Command-line interface for the MCP broker.
Connects the demo databases and runs SQL or natural-language questions against them.
"""

import json
import logging
import asyncio
import argparse
from typing import List, Optional

from app.api.deps import build_broker
from app.core.config import settings
from app.core.logger import setup_logging
from mcp_broker import BrokerResponse, DatabaseConfig

logger = logging.getLogger(__name__)

DEMO_DATABASES = [
    DatabaseConfig(id=1, name="Analytics Warehouse", type="snowflake",
                   connection_string="account=demo;user=analyst;password=demo"),
    DatabaseConfig(id=2, name="ML Lakehouse", type="databricks",
                   connection_string="host=demo.cloud.databricks.com;token=demo"),
    DatabaseConfig(id=3, name="Operational DB", type="sqlserver",
                   connection_string="server=localhost;database=ops;user=sa;password=demo"),
    DatabaseConfig(id=4, name="CRM", type="salesforce",
                   connection_string="instance=demo.my.salesforce.com;user=admin;password=demo"),
]

HELP_TEXT = """Commands:
  sql <query>       run SQL against the current database
  ask <question>    ask a natural-language question about the connected databases
  use <id>          switch the current database
  schema            show the tables of the current database
  refresh           re-introspect the current database and list schema changes
  dbs               list connections
  stats             show cache and snapshot statistics
  exit | quit       leave"""

class BrokerCLI:
    """Command-line interface for the MCP broker."""

    def __init__(self, database_id: int = 1):
        self.broker = build_broker(settings)
        self.database_id = database_id

    async def connect_demo_databases(self, configs: List[DatabaseConfig] = DEMO_DATABASES):
        for config in configs:
            response = await self.broker.connect_database(config)
            if response.success:
                print(f"[SYSTEM] Connected {config.name} ({config.type}) as database {config.id}")
            else:
                print(f"[ERROR] {config.name}: {response.error}")

    def print_response(self, response: BrokerResponse):
        print("\n" + "=" * 50)
        if not response.success:
            print(f"ERROR: {response.error}")
        else:
            print(json.dumps(response.to_dict()["data"], indent=2, default=str))
        print(f"({response.execution_time} ms)")
        print("=" * 50)

    async def run_sql(self, query: str):
        self.print_response(await self.broker.execute_query(self.database_id, query))

    async def ask(self, question: str):
        database_ids = [connection.database_id for connection in self.broker.get_all_connections()]
        self.print_response(await self.broker.process_natural_language_query(question, database_ids))

    async def handle_command(self, line: str) -> bool:
        """Run one command line; returns False when the user wants to leave"""
        command, _, argument = line.partition(" ")
        command = command.lower()
        argument = argument.strip()

        if command in ("exit", "quit"):
            return False
        if command == "sql" and argument:
            await self.run_sql(argument)
        elif command == "ask" and argument:
            await self.ask(argument)
        elif command == "use" and argument.isdigit():
            self.database_id = int(argument)
            print(f"Current database: {self.database_id}")
        elif command == "schema":
            response = await self.broker.get_schema(self.database_id)
            if response.success:
                for table in response.data.tables:
                    columns = ", ".join(f"{c.name} {c.type}" for c in table.columns)
                    print(f"  {table.name}({columns})")
            else:
                print(f"[ERROR] {response.error}")
        elif command == "refresh":
            self.print_response(await self.broker.refresh_schema(self.database_id))
        elif command == "dbs":
            for connection in self.broker.get_all_connections():
                print(f"  {connection.database_id}: {connection.metadata.get('name')} [{connection.type}] {connection.status}")
        elif command == "stats":
            print(json.dumps(self.broker.get_service_stats(), indent=2))
        else:
            print(HELP_TEXT)
        return True

    async def interactive_mode(self):
        print("=================================================")
        print("PromptELT MCP broker CLI")
        print("=================================================")
        print(HELP_TEXT)
        print(f"Current database: {self.database_id}")
        print("=================================================")

        while True:
            try:
                line = (await asyncio.to_thread(input, "\n> ")).strip()
            except (EOFError, KeyboardInterrupt):
                print("\nExiting...")
                break
            if not line:
                continue
            if not await self.handle_command(line):
                print("Exiting...")
                break

    async def close(self):
        await self.broker.shutdown()

async def run(args: argparse.Namespace):
    cli = BrokerCLI(database_id=args.database)
    cli.broker.start()
    try:
        await cli.connect_demo_databases()
        if args.sql:
            await cli.run_sql(args.sql)
        elif args.question:
            await cli.ask(args.question)
        else:
            await cli.interactive_mode()
    finally:
        await cli.close()

def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="PromptELT MCP broker CLI")
    parser.add_argument("--database", type=int, default=1, help="Database id used for SQL commands")
    parser.add_argument("--sql", type=str, help="SQL to run once (non-interactive mode)")
    parser.add_argument("--question", type=str, help="Question to ask once (non-interactive mode)")
    args = parser.parse_args(argv)

    setup_logging()
    asyncio.run(run(args))

if __name__ == "__main__":
    main()
