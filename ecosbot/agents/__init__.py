"""
LLM-backed agents
"""
from .simulators import PatientSimulatorAgent

__all__ = ["PatientSimulatorAgent"]
