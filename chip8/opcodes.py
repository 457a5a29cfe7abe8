# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
#
# MASTERING CHIP-8
# https://github.com/mattmikolay/chip-8/wiki/Mastering-CHIP%E2%80%908
from collections import namedtuple

from .errors import UnknownOpcode


# every instruction keyed by its pattern, i.e. the opcode with the operand nibbles zeroed
# pattern: (handler name, assembly template)
INSTRUCTIONS = {
    0x00E0: ("clear_screen", "CLS"),
    0x00EE: ("return", "RET"),
    0x1000: ("jump", "JP 0x{nnn:03x}"),
    0x2000: ("call_addr", "CALL 0x{nnn:03x}"),
    0x3000: ("skip_if_eq", "SE V{x:X}, 0x{nn:02x}"),
    0x4000: ("skip_if_not_eq", "SNE V{x:X}, 0x{nn:02x}"),
    0x5000: ("skip_if_eq_regs", "SE V{x:X}, V{y:X}"),
    0x6000: ("set_vx", "LD V{x:X}, 0x{nn:02x}"),
    0x7000: ("add_to_vx", "ADD V{x:X}, 0x{nn:02x}"),
    0x8000: ("set_vx_to_vy", "LD V{x:X}, V{y:X}"),
    0x8001: ("set_vx_or_vy", "OR V{x:X}, V{y:X}"),
    0x8002: ("set_vx_and_vy", "AND V{x:X}, V{y:X}"),
    0x8003: ("set_vx_xor_vy", "XOR V{x:X}, V{y:X}"),
    0x8004: ("add_vx_vy", "ADD V{x:X}, V{y:X}"),
    0x8005: ("sub_vx_vy", "SUB V{x:X}, V{y:X}"),
    0x8006: ("shr", "SHR V{x:X}, V{y:X}"),
    0x8007: ("subn_vx_vy", "SUBN V{x:X}, V{y:X}"),
    0x800E: ("shl", "SHL V{x:X}, V{y:X}"),
    0x9000: ("skip_if_not_eq_regs", "SNE V{x:X}, V{y:X}"),
    0xA000: ("set_idx", "LD I, 0x{nnn:03x}"),
    0xB000: ("jump_plus", "JP V0, 0x{nnn:03x}"),
    0xC000: ("random_byte_and", "RND V{x:X}, 0x{nn:02x}"),
    0xD000: ("to_screen", "DRW V{x:X}, V{y:X}, {n}"),
    0xE09E: ("skip_if_pressed", "SKP V{x:X}"),
    0xE0A1: ("skip_if_not_pressed", "SKNP V{x:X}"),
    0xF007: ("set_vx_dt", "LD V{x:X}, DT"),
    0xF00A: ("wait_keypress", "LD V{x:X}, K"),
    0xF015: ("set_dt_vx", "LD DT, V{x:X}"),
    0xF018: ("set_st", "LD ST, V{x:X}"),
    0xF01E: ("add_to_idx", "ADD I, V{x:X}"),
    0xF029: ("select_char", "LD F, V{x:X}"),
    0xF033: ("bcd_repr", "LD B, V{x:X}"),
    0xF055: ("store_vregs", "LD [I], V{x:X}"),
    0xF065: ("load_vregs", "LD V{x:X}, [I]"),
}

# WATCH OUT: masks order is important!!!
# the most specific mask comes first and decoding stops at the first match
MASKS = (
    (0xFFFF, frozenset([0x00E0, 0x00EE])),
    (0xF0FF, frozenset([0xE09E, 0xE0A1, 0xF007, 0xF00A, 0xF015, 0xF018, 0xF01E, 0xF029, 0xF033, 0xF055, 0xF065])),
    (0xF00F, frozenset([0x5000, 0x8000, 0x8001, 0x8002, 0x8003, 0x8004, 0x8005, 0x8006, 0x8007, 0x800E, 0x9000])),
    (0xF000, frozenset([0x1000, 0x2000, 0x3000, 0x4000, 0x6000, 0x7000, 0xA000, 0xB000, 0xC000, 0xD000])),
)

Instruction = namedtuple("Instruction", ["opcode", "pattern", "name", "x", "y", "n", "nn", "nnn"])


def decode(opcode, address=None):
    """
    decode the opcode using the masks table and return the matching Instruction
    with its operands already extracted, raise UnknownOpcode when nothing matches
    """
    opcode &= 0xFFFF
    for mask, patterns in MASKS:
        pattern = opcode & mask
        if pattern in patterns:
            return Instruction(
                opcode=opcode,
                pattern=pattern,
                name=INSTRUCTIONS[pattern][0],
                x=(opcode & 0x0F00) >> 8,
                y=(opcode & 0x00F0) >> 4,
                n=opcode & 0x000F,
                nn=opcode & 0x00FF,
                nnn=opcode & 0x0FFF,
            )
    raise UnknownOpcode(opcode, address)


def asm(instruction):
    """assembly text of an already decoded instruction"""
    return INSTRUCTIONS[instruction.pattern][1].format(**instruction._asdict())


def disassemble(opcode):
    try:
        return asm(decode(opcode))
    except UnknownOpcode:
        return f"DW 0x{opcode & 0xFFFF:04x}"


def disassemble_rom(rom, start=0x200):
    """yield (address, opcode, assembly) for every 2 bytes word of the ROM, a trailing odd byte included"""
    rom = bytes(rom)
    for offset in range(0, len(rom), 2):
        word = rom[offset] << 8 | (rom[offset + 1] if offset + 1 < len(rom) else 0)
        yield start + offset, word, disassemble(word)
