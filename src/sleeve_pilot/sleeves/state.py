"""
Persistence of option sleeve lifecycle state.

State is keyed by (sleeve, environment, account_key) so paper and live
accounts never share a record. The file store keeps one JSON blob per key;
the in-memory store backs simulations and tests.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from sleeve_pilot.models import OptionSleeveState, Sleeve


logger = logging.getLogger(__name__)


class SleeveStateStore(ABC):
    """Key-value store for OptionSleeveState records."""

    @abstractmethod
    def load(self, sleeve: Sleeve, environment: str, account_key: str) -> OptionSleeveState:
        """
        Load the state for a sleeve.

        Args:
            sleeve: INSURANCE or GROWTH
            environment: Deployment environment
            account_key: Account identifier

        Returns:
            Stored state, or a fresh INACTIVE state when none exists
        """
        pass

    @abstractmethod
    def save(
        self,
        sleeve: Sleeve,
        state: OptionSleeveState,
        environment: str,
        account_key: str,
    ) -> None:
        """
        Persist the state for a sleeve, replacing any previous record.

        Args:
            sleeve: INSURANCE or GROWTH
            state: State to store
            environment: Deployment environment
            account_key: Account identifier
        """
        pass


class JsonFileStateStore(SleeveStateStore):
    """
    File-backed store: {state_dir}/{sleeve}_state.{environment}.{account_key}.json

    A missing or corrupt file loads as INACTIVE; corruption is logged.
    """

    def __init__(self, state_dir: str | Path = "data_cache"):
        """
        Initialize the store.

        Args:
            state_dir: Directory holding the state files
        """
        self.state_dir = Path(state_dir)

    def path_for(self, sleeve: Sleeve, environment: str, account_key: str) -> Path:
        return self.state_dir / f"{sleeve.value}_state.{environment}.{account_key}.json"

    def load(self, sleeve: Sleeve, environment: str, account_key: str) -> OptionSleeveState:
        path = self.path_for(sleeve, environment, account_key)
        if not path.exists():
            return OptionSleeveState.inactive()
        try:
            with open(path, "r") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("state file root is not an object")
            return OptionSleeveState.from_dict(data)
        except (OSError, ValueError, TypeError, KeyError, ArithmeticError) as e:
            logger.warning("Ignoring corrupt %s state at %s: %s", sleeve.value, path, e)
            return OptionSleeveState.inactive(reason="State file unreadable; reset")

    def save(
        self,
        sleeve: Sleeve,
        state: OptionSleeveState,
        environment: str,
        account_key: str,
    ) -> None:
        path = self.path_for(sleeve, environment, account_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(state.to_dict(), f, indent=2)
        tmp_path.replace(path)


class InMemoryStateStore(SleeveStateStore):
    """Dictionary-backed store for simulations and tests."""

    def __init__(self):
        self._states: dict[tuple[str, str, str], dict] = {}

    def load(self, sleeve: Sleeve, environment: str, account_key: str) -> OptionSleeveState:
        data = self._states.get((sleeve.value, environment, account_key))
        if data is None:
            return OptionSleeveState.inactive()
        return OptionSleeveState.from_dict(data)

    def save(
        self,
        sleeve: Sleeve,
        state: OptionSleeveState,
        environment: str,
        account_key: str,
    ) -> None:
        self._states[(sleeve.value, environment, account_key)] = state.to_dict()
