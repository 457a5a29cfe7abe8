# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite
import logging
import random
import threading
from enum import Enum

from .devices import Framebuffer, Keypad, Timers
from .errors import Chip8Error, MachineHalted, StackOverflow, StackUnderflow
from .memory import Memory, Stack, ROM_START_ADDRESS, STACK_DEPTH
from .opcodes import asm, decode
from .quirks import Quirks

logger = logging.getLogger(__name__)


class CpuState(Enum):
    RUNNING = "running"
    AWAITING_KEY = "awaiting-key"


# ******************** CPU SECTION
class Chip8:
    """
    the whole machine: memory, registers, stack, timers, framebuffer and keypad

    every public method takes the same lock, so a step and a timer tick coming
    from different threads never interleave; a step that raises leaves the machine
    as it was before the step and halts it until reset() or load()
    """
    def __init__(self, quirks=None, stack_depth=STACK_DEPTH, rng=None):
        self.lock = threading.RLock()
        self.quirks = quirks or Quirks()
        self.rng = rng or random.Random()
        self.mem = Memory()
        self.stack = Stack(stack_depth)
        self.v_regs = [0] * 16
        self.pc = ROM_START_ADDRESS
        self.idx = 0    # specify where the sprites reside in memory
        self.timers = Timers()
        self.screen = Framebuffer()
        self.keypad = Keypad()
        self.state = CpuState.RUNNING
        self.wait_register = None
        self.fault = None
        self.instructions = {
            0x00E0: self._clear_screen,
            0x00EE: self._return,
            0x1000: self._jump,
            0x2000: self._call_addr,
            0x3000: self._skip_if_eq,
            0x4000: self._skip_if_not_eq,
            0x5000: self._skip_if_eq_regs,
            0x6000: self._set_vx,
            0x7000: self._add_to_vx,
            0x8000: self._set_vx_to_vy,
            0x8001: self._set_vx_or_vy,
            0x8002: self._set_vx_and_vy,
            0x8003: self._set_vx_xor_vy,
            0x8004: self._add_vx_vy,
            0x8005: self._sub_vx_vy,
            0x8006: self._shr,
            0x8007: self._subn_vx_vy,
            0x800E: self._shl,
            0x9000: self._skip_if_not_eq_regs,
            0xA000: self._set_idx,
            0xB000: self._jump_plus,
            0xC000: self._random_byte_and,
            0xD000: self._to_screen,
            0xE09E: self._skip_if_pressed,
            0xE0A1: self._skip_if_not_pressed,
            0xF007: self._set_vx_dt,
            0xF00A: self._wait_keypress,
            0xF015: self._set_dt_vx,
            0xF018: self._set_st,
            0xF01E: self._add_to_idx,
            0xF029: self._select_char,
            0xF033: self._bcd_repr,
            0xF055: self._store_vregs,
            0xF065: self._load_vregs,
        }

    def __str__(self):
        with self.lock:
            registers = " ".join(f"V{i:X}:0x{v:02x}" for i, v in enumerate(self.v_regs))
            return (
                f"PC_REGISTER:0x{self.pc:04x} | IDX_REGISTER:0x{self.idx:04x} | STATE:{self.state.value}\n"
                f"VARIABLE_REGISTERS: {registers}\n"
                f"STACK:{self.stack!r}\n"
                f"TIMERS: DT:{self.timers.delay} ST:{self.timers.sound}\n"
                f"FAULT: {self.fault}"
            )

    # ********** PUBLIC INTERFACE
    def reset(self):
        """back to the power-on state, quirks and stack depth are kept"""
        with self.lock:
            self._power_on()
            self.keypad.reset()

    def load(self, rom):
        """
        reset the machine and copy the ROM bytes at 0x200
        the keypad belongs to the input side, keys still held down stay pressed
        """
        with self.lock:
            self._power_on()
            self.keypad.forget_presses()
            try:
                self.mem.load_rom(rom)
            except Chip8Error as exc:
                self.fault = exc
                raise
            logger.debug("Loaded a ROM of %d bytes at 0x%04x", len(rom), ROM_START_ADDRESS)

    def configure(self, quirks):
        with self.lock:
            self.quirks = quirks

    @property
    def halted(self):
        return self.fault is not None

    @property
    def waiting_for_key(self):
        return self.state is CpuState.AWAITING_KEY

    def step(self):
        """
        execute exactly one instruction and return it
        while waiting for a key a step only polls the keypad and returns None
        """
        with self.lock:
            if self.fault is not None:
                raise MachineHalted(self.fault)
            if self.state is CpuState.AWAITING_KEY:
                return self._resume_on_keypress()
            pc = self.pc
            try:
                # fetch (each instruction is two bytes long)
                opcode = self.mem.read_word(pc)
                # decode
                instruction = decode(opcode, pc)
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug("mem_addr: 0x%04x    opcode: 0x%04x    instruction: %s", pc, opcode, asm(instruction))
                # execute
                self._goto_next_instruction()
                self.instructions[instruction.pattern](instruction)
            except Chip8Error as exc:
                self.pc = pc
                self.fault = exc
                raise
            return instruction

    def tick_timers(self):
        with self.lock:
            self.timers.tick()

    def framebuffer(self):
        with self.lock:
            return self.screen.snapshot()

    def set_key(self, index, pressed):
        with self.lock:
            self.keypad[index] = pressed

    def is_key_pressed(self, index):
        with self.lock:
            return self.keypad[index]

    def sound_timer(self):
        with self.lock:
            return self.timers.sound

    def delay_timer(self):
        with self.lock:
            return self.timers.delay

    # ********** INTERNALS
    def _power_on(self):
        self.mem = Memory()
        self.stack = Stack(self.stack.depth)
        self.v_regs = [0] * 16
        self.pc = ROM_START_ADDRESS
        self.idx = 0
        self.timers.reset()
        self.screen = Framebuffer()
        self.state = CpuState.RUNNING
        self.wait_register = None
        self.fault = None

    def _goto_next_instruction(self):
        self.pc = (self.pc + 0x2) & 0xFFFF

    def _resume_on_keypress(self):
        if self.keypad.untouched():
            return None
        key = self.keypad.first()
        self.v_regs[self.wait_register] = key
        logger.debug("Key 0x%x pressed, stored in V%X", key, self.wait_register)
        self.state = CpuState.RUNNING
        self.wait_register = None

    # ********** INSTRUCTIONS
    def _clear_screen(self, ins):
        self.screen.clear()

    def _return(self, ins):
        """return from a subroutine"""
        try:
            self.pc = self.stack.pop()
        except StackUnderflow as exc:
            raise StackUnderflow(self.pc - 2) from exc

    def _jump(self, ins):
        self.pc = ins.nnn

    def _call_addr(self, ins):
        try:
            self.stack.append(self.pc)
        except StackOverflow as exc:
            raise StackOverflow(ins.nnn, exc.depth) from exc
        self.pc = ins.nnn

    def _skip_if_eq(self, ins):
        if self.v_regs[ins.x] == ins.nn:
            self._goto_next_instruction()

    def _skip_if_not_eq(self, ins):
        if self.v_regs[ins.x] != ins.nn:
            self._goto_next_instruction()

    def _skip_if_eq_regs(self, ins):
        if self.v_regs[ins.x] == self.v_regs[ins.y]:
            self._goto_next_instruction()

    def _skip_if_not_eq_regs(self, ins):
        if self.v_regs[ins.x] != self.v_regs[ins.y]:
            self._goto_next_instruction()

    def _set_vx(self, ins):
        """set the value of one of the 16 variable registers, Vx"""
        self.v_regs[ins.x] = ins.nn

    def _add_to_vx(self, ins):
        """add to the value already present in Vx, VF is left untouched"""
        self.v_regs[ins.x] = (self.v_regs[ins.x] + ins.nn) & 0xFF

    def _set_vx_to_vy(self, ins):
        self.v_regs[ins.x] = self.v_regs[ins.y]

    def _set_vx_or_vy(self, ins):
        self.v_regs[ins.x] |= self.v_regs[ins.y]
        if self.quirks.logic_resets_vf:
            self.v_regs[0xF] = 0

    def _set_vx_and_vy(self, ins):
        self.v_regs[ins.x] &= self.v_regs[ins.y]
        if self.quirks.logic_resets_vf:
            self.v_regs[0xF] = 0

    def _set_vx_xor_vy(self, ins):
        self.v_regs[ins.x] ^= self.v_regs[ins.y]
        if self.quirks.logic_resets_vf:
            self.v_regs[0xF] = 0

    # the flag is always written after the result, so with X == F the flag wins
    def _add_vx_vy(self, ins):
        """set Vx = Vx + Vy, VF = carry"""
        total = self.v_regs[ins.x] + self.v_regs[ins.y]
        self.v_regs[ins.x] = total & 0xFF
        self.v_regs[0xF] = 1 if total > 0xFF else 0

    def _sub_vx_vy(self, ins):
        """set Vx = Vx - Vy, VF = NOT borrow"""
        vx, vy = self.v_regs[ins.x], self.v_regs[ins.y]
        self.v_regs[ins.x] = (vx - vy) & 0xFF
        self.v_regs[0xF] = 1 if vx >= vy else 0

    def _subn_vx_vy(self, ins):
        """set Vx = Vy - Vx, VF = NOT borrow"""
        vx, vy = self.v_regs[ins.x], self.v_regs[ins.y]
        self.v_regs[ins.x] = (vy - vx) & 0xFF
        self.v_regs[0xF] = 1 if vy >= vx else 0

    def _shift_source(self, ins):
        return self.v_regs[ins.y] if self.quirks.shift_uses_vy else self.v_regs[ins.x]

    def _shr(self, ins):
        """set Vx = source SHR 1, VF = the bit shifted out"""
        source = self._shift_source(ins)
        self.v_regs[ins.x] = source >> 1
        self.v_regs[0xF] = source & 0x1

    def _shl(self, ins):
        """set Vx = source SHL 1, VF = the bit shifted out"""
        source = self._shift_source(ins)
        self.v_regs[ins.x] = (source << 1) & 0xFF
        self.v_regs[0xF] = (source & 0x80) >> 7

    def _set_idx(self, ins):
        self.idx = ins.nnn

    def _jump_plus(self, ins):
        offset = self.v_regs[ins.x] if self.quirks.jump_offset_uses_vx else self.v_regs[0x0]
        self.pc = (ins.nnn + offset) & 0xFFFF

    def _random_byte_and(self, ins):
        self.v_regs[ins.x] = self.rng.randint(0, 255) & ins.nn

    def _to_screen(self, ins):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        rows = self.mem[self.idx:self.idx + ins.n]
        collision = self.screen.draw_sprite(
            self.v_regs[ins.x], self.v_regs[ins.y], rows, clip=self.quirks.clip_sprites,
        )
        self.v_regs[0xF] = 1 if collision else 0

    def _skip_if_pressed(self, ins):
        if self.keypad[self.v_regs[ins.x] & 0xF]:
            self._goto_next_instruction()

    def _skip_if_not_pressed(self, ins):
        if not self.keypad[self.v_regs[ins.x] & 0xF]:
            self._goto_next_instruction()

    def _set_vx_dt(self, ins):
        self.v_regs[ins.x] = self.timers.delay

    def _wait_keypress(self, ins):
        """stop executing until a key goes down, its value ends up in Vx"""
        self.keypad.forget_presses()
        self.state = CpuState.AWAITING_KEY
        self.wait_register = ins.x

    def _set_dt_vx(self, ins):
        self.timers.delay = self.v_regs[ins.x]

    def _set_st(self, ins):
        self.timers.sound = self.v_regs[ins.x]

    def _add_to_idx(self, ins):
        self.idx = (self.idx + self.v_regs[ins.x]) & 0xFFFF

    def _select_char(self, ins):
        """set I to location of sprite for digit Vx"""
        self.idx = self.mem.font_address(self.v_regs[ins.x])

    def _bcd_repr(self, ins):
        """hundreds digit of Vx in memory at I, the tens digit at I+1, the ones digit at I+2"""
        value = self.v_regs[ins.x]
        self.mem[self.idx:self.idx + 3] = (value // 100, (value // 10) % 10, value % 10)

    def _store_vregs(self, ins):
        """store registers V0 through Vx (included) in memory starting at location I"""
        self.mem[self.idx:self.idx + ins.x + 1] = self.v_regs[:ins.x + 1]
        if self.quirks.load_store_increments_i:
            self.idx = (self.idx + ins.x + 1) & 0xFFFF

    def _load_vregs(self, ins):
        """read registers V0 through Vx (included) from memory starting at location I"""
        self.v_regs[:ins.x + 1] = list(self.mem[self.idx:self.idx + ins.x + 1])
        if self.quirks.load_store_increments_i:
            self.idx = (self.idx + ins.x + 1) & 0xFFFF
