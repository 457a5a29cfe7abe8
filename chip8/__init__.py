from .cpu import Chip8, CpuState
from .errors import (
    Chip8Error,
    FontWriteProtected,
    MachineHalted,
    MemoryOutOfBounds,
    RomTooLarge,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)
from .quirks import PRESETS, Quirks

__version__ = "0.1.0"
