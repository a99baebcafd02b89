from typing import Any, Optional

from pydantic import BaseModel


class OnlineDataset(BaseModel):
    """One server's column in the bulk history export."""
    label: Optional[str] = None
    data: Any = None

    def values(self) -> list[Any]:
        return self.data if isinstance(self.data, list) else []


class OnlineHistoryImport(BaseModel):
    """
    Bulk history document loaded once by the chart client.

    `data[i]` pairs with `labels[i]`; indices past the end of `data` count as 0.

    Example:
        {
            "labels": ["2024-01-01T00:00:00Z", "2024-01-01T01:00:00Z"],
            "datasets": [{"label": "s1.example.com:22005", "data": [12, 30]}]
        }
    """
    labels: list[Any]
    datasets: list[Any]
