# COMPATIBILITY QUIRKS TABLE
# https://games.gulrak.net/cadmium/chip8-opcode-table.html#quirk6
from dataclasses import dataclass, fields, replace


@dataclass(frozen=True)
class Quirks:
    """
    each flag switches one historically divergent instruction path, the defaults
    follow the original COSMAC VIP interpreter except for sprite wrapping
    """
    shift_uses_vy: bool = True              # 8XY6/8XYE shift VY into VX instead of VX in place
    load_store_increments_i: bool = True    # FX55/FX65 leave I pointing past the last register
    jump_offset_uses_vx: bool = False       # BXNN jumps to XNN + VX instead of NNN + V0
    clip_sprites: bool = False              # DXYN clips at the screen edges instead of wrapping
    logic_resets_vf: bool = True            # 8XY1/8XY2/8XY3 set VF to 0

    def override(self, **changes):
        """copy with some of the flags changed, None values are ignored"""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def names(cls):
        return [f.name for f in fields(cls)]


PRESETS = {
    "chip8": Quirks(),
    "schip": Quirks(
        shift_uses_vy=False,
        load_store_increments_i=False,
        jump_offset_uses_vx=True,
        clip_sprites=True,
        logic_resets_vf=False,
    ),
    "modern": Quirks(
        shift_uses_vy=False,
        load_store_increments_i=False,
        jump_offset_uses_vx=False,
        clip_sprites=False,
        logic_resets_vf=False,
    ),
}


def preset(name, **overrides):
    try:
        quirks = PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown quirks preset {name!r}, choose one of {', '.join(PRESETS)}") from None
    return quirks.override(**overrides)
