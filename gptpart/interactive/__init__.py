"""Interactive partition editing session."""
from gptpart.interactive.app import run_session, run_session_for_device
from gptpart.interactive.state import Machine, transition

__all__ = ['Machine', 'run_session', 'run_session_for_device', 'transition']
