"""
JSON persistence for the engine state blob and per-user settings.
"""
import json
import os
import random
import string
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pytz
from loguru import logger
from pydantic import ValidationError

from ai_scalper.models import Credentials, PerformancePoint, RiskSettings
from ai_scalper.state import (
    DailyPatch,
    PerformancePatch,
    PortfolioPatch,
    SettingsPatch,
    StatePatch,
    TradingState,
)

DATA_FILENAME = "trading_bot_data.json"

# Python field name -> key in the persisted blob
SETTINGS_KEYS = {
    'risk_per_trade': 'riskPerTrade',
    'max_concurrent_scalps': 'maxConcurrentScalps',
    'limit_order_offset': 'limitOrderOffset',
    'ai_analysis_freq': 'aiAnalysisFreq',
}
API_KEYS = {
    'alpaca_key': 'alpacaKey',
    'alpaca_secret': 'alpacaSecret',
    'gemini_key': 'geminiKey',
}


def settings_to_dict(settings: RiskSettings) -> Dict[str, Any]:
    return {blob_key: getattr(settings, field) for field, blob_key in SETTINGS_KEYS.items()}


def settings_from_dict(data: Dict[str, Any], base: Optional[RiskSettings] = None) -> RiskSettings:
    """Overlay persisted settings on `base`; unknown keys are ignored."""
    values = (base or RiskSettings()).model_dump()
    for field, blob_key in SETTINGS_KEYS.items():
        if data.get(blob_key) is not None:
            values[field] = data[blob_key]
    return RiskSettings.model_validate(values)


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, 'w') as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)


def state_to_blob(state: TradingState, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Serialize the persisted part of the state.

    Args:
        state: Engine state
        now: Save time

    Returns:
        JSON-compatible dict
    """
    now = now or datetime.now(pytz.utc)
    return {
        'performanceData': [{'x': p.x.isoformat(), 'y': p.y} for p in state.performance],
        'initialEquity': state.portfolio.initial_equity,
        'settings': settings_to_dict(state.settings),
        'isFirstTradeMadeToday': state.daily.first_trade_made_today,
        'lastTradeDate': state.daily.last_trade_date,
        'lastUpdated': now.isoformat(),
    }


def blob_to_patches(blob: Dict[str, Any], state: TradingState) -> List[StatePatch]:
    """
    Patches restoring a persisted blob onto a fresh state.

    The last performance point restores equity and is taken as the previous
    close (last_equity).
    """
    patches: List[StatePatch] = []

    if isinstance(blob.get('settings'), dict):
        patches.append(SettingsPatch(settings=settings_from_dict(blob['settings'], state.settings)))

    if blob.get('performanceData') and blob.get('initialEquity'):
        performance = tuple(PerformancePoint.model_validate(p) for p in blob['performanceData'])
        patches.append(PerformancePatch(performance=performance))
        last = performance[-1].y
        patches.append(PortfolioPatch(
            initial_equity=float(blob['initialEquity']),
            equity=last,
            last_equity=last
        ))

    patches.append(DailyPatch(
        first_trade_made_today=bool(blob.get('isFirstTradeMadeToday', False)),
        last_trade_date=blob.get('lastTradeDate')
    ))
    return patches


class StateStore:
    """
    Stores the state blob as a single JSON file.
    """

    def __init__(self, data_dir: Union[str, Path], filename: str = DATA_FILENAME):
        """
        Initialize state store.

        Args:
            data_dir: Directory holding the data file
            filename: Data file name
        """
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / filename

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Read the raw blob.

        Returns:
            Blob dict, or None when there is no (readable) data file
        """
        if not self.path.exists():
            logger.info("No local data file found. A new one will be created on save.")
            return None

        try:
            with open(self.path, 'r') as f:
                contents = f.read()
            return json.loads(contents) if contents.strip() else None
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read from data file {self.path}: {e}")
            return None

    def restore(self, state: TradingState) -> List[StatePatch]:
        """
        Patches that bring a fresh state up to date with the data file.
        """
        blob = self.load()
        if not blob:
            return []
        try:
            patches = blob_to_patches(blob, state)
        except (ValidationError, TypeError, ValueError) as e:
            logger.error(f"Failed to restore data from {self.path}: {e}")
            return []
        logger.info(f"Data loaded from {self.path}")
        return patches

    def save(self, state: TradingState) -> bool:
        """
        Write the state blob.

        Returns:
            True if saved
        """
        try:
            _write_json(self.path, state_to_blob(state))
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Automatic save failed: {e}")
            return False

    def export_data(self, destination: Union[str, Path, None] = None) -> Optional[Path]:
        """
        Copy the data file to `destination` (defaults to a dated file in the cwd).

        Returns:
            Path written, or None when there is nothing to export
        """
        if not self.path.exists():
            logger.warning("No data file found to export.")
            return None

        if destination is None:
            destination = Path(f"trading_bot_data_{datetime.now(pytz.utc).date().isoformat()}.json")
        destination = Path(destination)
        destination.write_text(self.path.read_text())
        logger.info(f"Data exported to {destination}")
        return destination

    def import_data(self, source: Union[str, Path]) -> None:
        """
        Replace the data file with `source` after checking it is valid JSON.

        Raises:
            ValueError: Source is not valid JSON
            OSError: Source cannot be read or target cannot be written
        """
        content = Path(source).read_text()
        json.loads(content)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(content)
        logger.info(f"Data imported from {source}")

    def clear_data(self) -> bool:
        """
        Delete the data file.

        Returns:
            True if a file was removed
        """
        if not self.path.exists():
            logger.info("No data file to clear.")
            return False
        self.path.unlink()
        logger.info(f"Data file {self.path} cleared")
        return True


def generate_user_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


class SettingsStore:
    """
    Stores credentials and risk settings per user id.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def user_id(self) -> str:
        """Stable user id, created on first use."""
        id_path = self.data_dir / "user_id"
        if id_path.exists():
            user_id = id_path.read_text().strip()
            if user_id:
                return user_id
        user_id = generate_user_id()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        id_path.write_text(user_id)
        return user_id

    def _path(self, user_id: str) -> Path:
        return self.data_dir / f"tradingBotSettings_{user_id}.json"

    def load(self, user_id: str) -> Tuple[Optional[Credentials], Optional[Dict[str, Any]]]:
        """
        Load stored credentials and raw settings.

        Returns:
            Tuple of (credentials or None, settings dict or None)
        """
        path = self._path(user_id)
        if not path.exists():
            return None, None
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read settings for {user_id}: {e}")
            return None, None

        credentials = None
        if isinstance(data.get('apiKeys'), dict):
            keys = data['apiKeys']
            credentials = Credentials(**{field: keys.get(key) or "" for field, key in API_KEYS.items()})
        settings = data.get('settings') if isinstance(data.get('settings'), dict) else None
        return credentials, settings

    def save(self, user_id: str, credentials: Credentials, settings: RiskSettings) -> None:
        """Persist credentials and settings for a user."""
        data = {
            'apiKeys': {key: getattr(credentials, field) for field, key in API_KEYS.items()},
            'settings': settings_to_dict(settings),
        }
        _write_json(self._path(user_id), data)
        logger.info(f"Settings saved for {user_id}")
