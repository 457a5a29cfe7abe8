class Chip8Error(Exception):
    """base class for every fault the machine can report"""


class MemoryOutOfBounds(Chip8Error):
    def __init__(self, address):
        self.address = address
        super().__init__(f"Memory access at 0x{address:04x} is outside the 4KB address space")


class FontWriteProtected(MemoryOutOfBounds):
    """the built-in font is loaded once and can't be overwritten by the program"""
    def __init__(self, address):
        self.address = address
        Chip8Error.__init__(self, f"Write at 0x{address:04x} would overwrite the built-in font")


class UnknownOpcode(Chip8Error):
    def __init__(self, opcode, address=None):
        self.opcode = opcode
        self.address = address
        where = f" at 0x{address:04x}" if address is not None else ""
        super().__init__(f"Unknown opcode 0x{opcode:04x}{where}")


class StackOverflow(Chip8Error):
    def __init__(self, address, depth):
        self.address = address
        self.depth = depth
        super().__init__(f"Pushing 0x{address:04x} exceeds the stack depth of {depth} addresses")


class StackUnderflow(Chip8Error):
    def __init__(self, address=None):
        self.address = address
        where = f" at 0x{address:04x}" if address is not None else ""
        super().__init__(f"Return{where} with an empty stack")


class RomTooLarge(Chip8Error):
    def __init__(self, size, capacity):
        self.size = size
        self.capacity = capacity
        super().__init__(f"ROM of {size} bytes does not fit in the {capacity} bytes available")


class MachineHalted(Chip8Error):
    """raised by step() once a fault has halted the machine, until it is reset or reloaded"""
    def __init__(self, fault):
        self.fault = fault
        super().__init__(f"The machine is halted: {fault}")
