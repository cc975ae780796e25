from __future__ import annotations

import datetime as dt
import json
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class StateEntry(Base):
    __tablename__ = "state_entries"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    # UPDATEs match on the version read, so a concurrent writer raises StaleDataError
    __mapper_args__ = {"version_id_col": version}

    def set_value(self, value: Dict[str, Any]) -> None:
        self.value = json.dumps(value, sort_keys=True)

    def get_value(self) -> Dict[str, Any]:
        return json.loads(self.value)
