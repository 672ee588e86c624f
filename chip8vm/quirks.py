"""
CHIP-8 Quirk Configuration
Six independent switches selecting between the historically divergent
behaviors of a handful of opcodes, plus named profiles and JSON profile files.
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, List, Mapping, Union


@dataclass(frozen=True)
class Quirks:
    """
    Immutable quirk set fixed at emulator construction.
    All switches off is the reference behavior.
    """
    vf_reset: bool = False      # 8xy1/8xy2/8xy3 reset VF to 0
    memory: bool = False        # Fx55/Fx65 increment I register
    display_wait: bool = False  # One draw per frame (the frame driver stops early)
    clipping: bool = False      # Dxyn clips at the screen edge instead of wrapping
    shifting: bool = False      # 8xy6/8xyE shift vY into vX (False = shift vX in place)
    jumping: bool = False       # Bnnn works as BXNN: jump to NN + vX

    @classmethod
    def names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Mapping[str, bool]) -> "Quirks":
        """Build a quirk set from a mapping, missing switches default to off"""
        known = set(cls.names())
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown quirk(s): {', '.join(unknown)}")

        for name, value in data.items():
            if not isinstance(value, bool):
                raise ValueError(f"Quirk '{name}' must be true or false, got {value!r}")

        return cls(**data)

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)

    def enabled(self) -> List[str]:
        """Names of the switches that are on"""
        return [name for name, value in self.to_dict().items() if value]

    def with_overrides(self, overrides: Mapping[str, bool]) -> "Quirks":
        merged = self.to_dict()
        merged.update(overrides)
        return Quirks.from_dict(merged)


# Profiles for the common program corpora
PROFILES: Dict[str, Quirks] = {
    'default': Quirks(),
    'chip8': Quirks(vf_reset=True, memory=True, display_wait=True, clipping=True, shifting=True),
    'schip': Quirks(clipping=True, jumping=True),
    'xochip': Quirks(memory=True, shifting=True),
}


def get_profile(name: str) -> Quirks:
    """Look up a named quirk profile"""
    try:
        return PROFILES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown quirk profile '{name}' (available: {', '.join(sorted(PROFILES))})") from None


def load_quirks_file(path: Union[str, Path]) -> Quirks:
    """
    Load quirks from a JSON profile file.

    Accepts either a flat mapping of switches:
        {"vf_reset": true, "clipping": true}
    or a base profile with overrides:
        {"profile": "schip", "overrides": {"memory": true}}
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Quirk file {path} must contain a JSON object")

    if 'profile' in data:
        extra = sorted(set(data) - {'profile', 'overrides'})
        if extra:
            raise ValueError(f"Unexpected key(s) in quirk file {path}: {', '.join(extra)}")
        base = get_profile(data['profile'])
        overrides = data.get('overrides', {})
        if not isinstance(overrides, dict):
            raise ValueError(f"'overrides' in quirk file {path} must be a JSON object")
        return base.with_overrides(overrides)

    return Quirks.from_dict(data)


def describe(quirks: Quirks) -> str:
    """One line per switch, as printed by the command line runner"""
    return '\n'.join(f"  {name}: {'ON' if value else 'OFF'}" for name, value in quirks.to_dict().items())
