from ai_scalper.strategies.ai_scalping import AIScalpingStrategy
from ai_scalper.strategies.base import ScanResult, Strategy

__all__ = ["AIScalpingStrategy", "ScanResult", "Strategy"]
