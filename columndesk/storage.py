import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

STATE_FILE = Path("desk_state.json")


class TutorialFlag(BaseModel):
    completed: bool = True
    completed_at: datetime = Field(default_factory=datetime.utcnow)


class DeskState(BaseModel):
    # onboarding tour completion, keyed by feature name
    tutorials: Dict[str, TutorialFlag] = Field(default_factory=dict)


def load_state(path: Optional[Path] = None) -> DeskState:
    path = path or STATE_FILE
    if not path.exists():
        return DeskState()
    with open(path, "r") as f:
        data = json.load(f)
    return DeskState.model_validate(data)


def save_state(state: DeskState, path: Optional[Path] = None):
    path = path or STATE_FILE
    path.write_text(
        json.dumps(state.model_dump(mode="json"), indent=2)
    )


class TutorialStore:
    """Onboarding completion flags backed by the JSON state file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = path or STATE_FILE
        self.state = load_state(self.path)

    def is_completed(self, feature: str) -> bool:
        flag = self.state.tutorials.get(feature)
        return bool(flag and flag.completed)

    def complete(self, feature: str) -> TutorialFlag:
        flag = TutorialFlag()
        self.state.tutorials[feature] = flag
        save_state(self.state, self.path)
        return flag

    def reset(self, feature: str) -> bool:
        existed = self.state.tutorials.pop(feature, None) is not None
        save_state(self.state, self.path)
        return existed
