from pydantic import BaseModel
from typing import Optional, Dict, Any, Literal


class QueryFilter(BaseModel):
    query_filter: Optional[str] = None
    parameters: Dict[str, Any] = {}

    def add_filter(self, filter: str, param: Dict[str, Any] = {}, operator: Literal['and', 'or'] = 'and'):
        """
        Parameters whose value is None are skipped together with their clause.

        Examples:
            >>> add_filter("PartitionKey eq @authorization_id", {"authorization_id": "pi_123"})
            >>> add_filter("state eq @state", {"state": None})  # no-op
        """
        if param:
            first_value = next(iter(param.values()))
            if first_value is None:
                return
            self.parameters.update(param)

        if self.query_filter:
            self.query_filter += f" {operator} {filter}"
        else:
            self.query_filter = filter
