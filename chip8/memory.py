from .errors import FontWriteProtected, MemoryOutOfBounds, RomTooLarge, StackOverflow, StackUnderflow


# ******************** STATIC SECTION
C8_FONTS = [0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
            0x20, 0x60, 0x20, 0x20, 0x70,  # 1
            0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
            0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
            0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
            0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
            0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
            0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
            0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
            0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
            0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
            0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
            0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
            0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
            0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
            0xF0, 0x80, 0xF0, 0x80, 0x80]  # F

MEMORY_SIZE = 4096
FONT_START_ADDRESS = 0x050
FONT_GLYPH_SIZE = 5
FONT_END_ADDRESS = FONT_START_ADDRESS + len(C8_FONTS)
ROM_START_ADDRESS = 0x200
ROM_CAPACITY = MEMORY_SIZE - ROM_START_ADDRESS
STACK_DEPTH = 16


# ********** WRAPS A LIST TO REPRESENT A STACK WITH A LIMITED SIZE (16 ADDRESSES BY DEFAULT)
class Stack:
    def __init__(self, depth=STACK_DEPTH):
        self.addr_list = []
        self.depth = depth

    def __len__(self):
        return len(self.addr_list)

    def __repr__(self):
        return "[" + ", ".join(f"0x{a:04x}" for a in self.addr_list) + "]"

    def append(self, address):
        if len(self.addr_list) >= self.depth:
            raise StackOverflow(address, self.depth)
        self.addr_list.append(address & 0xFFFF)

    def pop(self):
        if not self.addr_list:
            raise StackUnderflow()
        return self.addr_list.pop()


# ********** WRAPS A BYTEARRAY TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
class Memory:
    """
    every access is bounds checked: an address outside [0, 4095] raises MemoryOutOfBounds
    instead of wrapping or being clamped, slices included
    the font is written once here, later writes overlapping it raise FontWriteProtected
    """
    def __init__(self):
        self.inner = bytearray(MEMORY_SIZE)
        self.inner[FONT_START_ADDRESS:FONT_END_ADDRESS] = bytes(C8_FONTS)

    def __len__(self):
        return MEMORY_SIZE

    def __setitem__(self, key, value):
        if isinstance(key, slice):
            start, stop = self._span(key)
            value = bytes(v & 0xFF for v in value)
            if len(value) != stop - start:
                raise ValueError("Memory slices can't be resized")
            self.check_writable(start, stop - start)
            self.inner[start:stop] = value
        else:
            self.check(key)
            self.check_writable(key)
            self.inner[key] = value & 0xFF

    def __getitem__(self, key):
        if isinstance(key, slice):
            start, stop = self._span(key)
            return bytes(self.inner[start:stop])
        self.check(key)
        return self.inner[key]

    def _span(self, key):
        if key.step not in (None, 1):
            raise ValueError("Memory slices must be contiguous")
        start = 0 if key.start is None else key.start
        stop = MEMORY_SIZE if key.stop is None else key.stop
        if stop > start:
            self.check(start, stop - start)
        return start, max(start, stop)

    @staticmethod
    def check(address, length=1):
        """make sure every address in [address, address+length) exists"""
        if address < 0 or address >= MEMORY_SIZE:
            raise MemoryOutOfBounds(address)
        last = address + length - 1
        if last >= MEMORY_SIZE:
            raise MemoryOutOfBounds(last)

    @staticmethod
    def check_writable(address, length=1):
        """make sure [address, address+length) doesn't overlap the font"""
        if length > 0 and address < FONT_END_ADDRESS and address + length > FONT_START_ADDRESS:
            raise FontWriteProtected(max(address, FONT_START_ADDRESS))

    def read_word(self, address):
        """big-endian 16 bit word at address, address+1"""
        self.check(address, 2)
        return self.inner[address] << 8 | self.inner[address + 1]

    def load_rom(self, rom):
        """copy the ROM bytes into memory, starting at 0x200"""
        rom = bytes(rom)
        if len(rom) > ROM_CAPACITY:
            raise RomTooLarge(len(rom), ROM_CAPACITY)
        self.inner[ROM_START_ADDRESS:ROM_START_ADDRESS+len(rom)] = rom

    def font_address(self, digit):
        return FONT_START_ADDRESS + (digit & 0xF) * FONT_GLYPH_SIZE
