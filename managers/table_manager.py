from typing import Dict, Optional
from threading import Lock
from azure.data.tables import TableServiceClient, TableClient
from azure.core.exceptions import ResourceExistsError
from azure.identity import DefaultAzureCredential
import os

COURSES = "courses"
ARTWORKS = "artworks"
BOOKS = "books"
PRODUCTS = "marketplaceproducts"
USER_PROFILES = "userprofiles"
ENROLLMENTS = "enrollments"
SALES = "sales"
PURCHASES = "purchases"
RECONCILIATIONS = "reconciliations"
OPERATOR_ALERTS = "operatoralerts"
DONATIONS = "donations"
FAILED_PAYMENTS = "failedpayments"
DISPUTES = "disputes"
TRANSFERS = "transfers"

# catalog documents live in a single partition per table
ITEM_PARTITION = "item"


class TableConnectionManager:
    _instance: Optional['TableConnectionManager'] = None
    _lock = Lock()
    client: Optional['TableServiceClient'] = None
    tables: Dict[str, TableClient] = {}

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    def get_client():
                        credential = DefaultAzureCredential()
                        return TableServiceClient(
                            endpoint=os.getenv("AZURE_COSMOSDB_ENDPOINT"),
                            credential=credential
                        )

                    instance = super().__new__(cls)
                    instance.client = get_client()
                    instance.tables = {}
                    cls._instance = instance

        return cls._instance

    def __init__(self):
        pass

    def get_table(self, table_name: str) -> TableClient:
        table_client = self.tables.get(table_name)
        if table_client is None:
            with self._lock:
                try:
                    table_client = self.client.create_table_if_not_exists(table_name)
                except ResourceExistsError:
                    table_client = self.client.get_table_client(table_name)
                self.tables[table_name] = table_client
        return table_client
