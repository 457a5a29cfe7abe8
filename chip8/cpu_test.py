import random
import unittest

from chip8.cpu import Chip8
from chip8.errors import (
    FontWriteProtected,
    MachineHalted,
    MemoryOutOfBounds,
    RomTooLarge,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)
from chip8.memory import C8_FONTS
from chip8.quirks import Quirks


def rom(*words):
    return b"".join(w.to_bytes(2, "big") for w in words)

def boot(*words, **kwargs):
    chip = Chip8(**kwargs)
    chip.load(rom(*words))
    return chip

def run(chip, steps):
    for _ in range(steps):
        chip.step()

def execute(chip, opcode):
    """write opcode at PC and execute it"""
    chip.mem[chip.pc:chip.pc + 2] = opcode.to_bytes(2, "big")
    return chip.step()

def lit_pixels(chip):
    return sum(sum(row) for row in chip.framebuffer())


class TestPowerOn(unittest.TestCase):
    def test_initial_state(self):
        chip = Chip8()
        self.assertEqual(chip.pc, 0x200)
        self.assertEqual(chip.v_regs, [0] * 16)
        self.assertEqual(chip.idx, 0)
        self.assertEqual(len(chip.stack), 0)
        self.assertEqual((chip.delay_timer(), chip.sound_timer()), (0, 0))
        self.assertEqual(lit_pixels(chip), 0)
        self.assertFalse(any(chip.is_key_pressed(k) for k in range(16)))
        self.assertFalse(chip.halted)
        self.assertFalse(chip.waiting_for_key)

    def test_load_resets_state(self):
        chip = boot(0x6005, 0xF015)
        run(chip, 2)
        chip.load(rom(0x00E0))
        self.assertEqual(chip.pc, 0x200)
        self.assertEqual(chip.v_regs[0], 0)
        self.assertEqual(chip.delay_timer(), 0)
        self.assertEqual(chip.mem[0x202], 0)

    def test_rom_too_large(self):
        chip = Chip8()
        with self.assertRaises(RomTooLarge):
            chip.load(bytes(4096 - 0x200 + 1))
        self.assertTrue(chip.halted)
        with self.assertRaises(MachineHalted):
            chip.step()

    def test_state_dump(self):
        chip = boot(0x6A0F)
        chip.step()
        dump = str(chip)
        self.assertIn("PC_REGISTER:0x0202", dump)
        self.assertIn("VA:0x0f", dump)


class TestEndToEnd(unittest.TestCase):
    def test_load_add(self):
        chip = Chip8()
        chip.load(bytes([0x60, 0x0A, 0x61, 0x05, 0x80, 0x14]))
        run(chip, 3)
        self.assertEqual(chip.v_regs[0], 15)
        self.assertEqual(chip.v_regs[0xF], 0)
        self.assertEqual(chip.pc, 0x200 + 6)

    def test_clear_after_draw(self):
        chip = boot(0xA050, 0xD005, 0x00E0)
        run(chip, 2)
        self.assertGreater(lit_pixels(chip), 0)
        chip.step()
        self.assertEqual(lit_pixels(chip), 0)
        frame = chip.framebuffer()
        self.assertEqual((len(frame), len(frame[0])), (32, 64))

    def test_seventeen_nested_calls(self):
        # every call jumps to the next word, which is another call
        chip = boot(*[0x2000 | (0x202 + 2 * i) for i in range(17)], stack_depth=16)
        run(chip, 16)
        self.assertEqual(len(chip.stack), 16)
        before = (chip.pc, list(chip.stack.addr_list), list(chip.v_regs), chip.idx)
        with self.assertRaises(StackOverflow) as ctx:
            chip.step()
        self.assertEqual(ctx.exception.depth, 16)
        self.assertEqual((chip.pc, list(chip.stack.addr_list), list(chip.v_regs), chip.idx), before)
        self.assertTrue(chip.halted)
        with self.assertRaises(MachineHalted) as ctx:
            chip.step()
        self.assertIsInstance(ctx.exception.fault, StackOverflow)
        self.assertEqual(chip.pc, before[0])


class TestFlowControl(unittest.TestCase):
    def test_jump(self):
        chip = boot(0x1ABC)
        chip.step()
        self.assertEqual(chip.pc, 0xABC)

    def test_nested_calls_unwind(self):
        depth = 5
        chip = boot(0x2300)
        # subroutine k at 0x300 + 0x10*k calls subroutine k+1, then returns
        for k in range(depth):
            base = 0x300 + 0x10 * k
            chip.mem[base:base + 4] = rom(0x2000 | (base + 0x10), 0x00EE)
        last = 0x300 + 0x10 * depth
        chip.mem[last:last + 2] = rom(0x00EE)

        run(chip, depth + 1)
        self.assertEqual(chip.pc, last)
        self.assertEqual(len(chip.stack), depth + 1)
        for k in reversed(range(depth)):
            chip.step()
            self.assertEqual(chip.pc, 0x300 + 0x10 * k + 2)
            self.assertEqual(len(chip.stack), k + 1)
        chip.step()
        self.assertEqual(chip.pc, 0x202)
        self.assertEqual(len(chip.stack), 0)

    def test_return_with_empty_stack(self):
        chip = boot(0x00EE)
        with self.assertRaises(StackUnderflow) as ctx:
            chip.step()
        self.assertEqual(ctx.exception.address, 0x200)
        self.assertEqual(chip.pc, 0x200)
        self.assertTrue(chip.halted)

    def test_skips(self):
        cases = [
            (0x3000, 0x204), (0x3001, 0x202),
            (0x4001, 0x204), (0x4000, 0x202),
            (0x5010, 0x204), (0x9010, 0x202),
        ]
        for opcode, pc in cases:
            chip = boot(opcode)
            chip.step()
            self.assertEqual(chip.pc, pc, hex(opcode))

    def test_unknown_opcode_halts(self):
        chip = boot(0x6001, 0x0123)
        chip.step()
        with self.assertRaises(UnknownOpcode) as ctx:
            chip.step()
        self.assertEqual(ctx.exception.address, 0x202)
        self.assertEqual(chip.pc, 0x202)
        with self.assertRaises(MachineHalted):
            chip.step()
        chip.reset()
        self.assertFalse(chip.halted)

    def test_fetch_past_the_end(self):
        chip = boot(0x1FFF)
        chip.step()
        with self.assertRaises(MemoryOutOfBounds) as ctx:
            chip.step()
        self.assertEqual(ctx.exception.address, 0x1000)


class TestArithmetic(unittest.TestCase):
    SAMPLES = (0, 1, 2, 0x7F, 0x80, 0xFE, 0xFF)

    def test_add_flag_is_carry(self):
        for a in self.SAMPLES:
            for b in self.SAMPLES:
                chip = Chip8()
                chip.v_regs[1], chip.v_regs[2] = a, b
                execute(chip, 0x8124)
                self.assertEqual(chip.v_regs[1], (a + b) & 0xFF)
                self.assertEqual(chip.v_regs[0xF], 1 if a + b > 255 else 0)

    def test_sub_flag_is_not_borrow(self):
        for a in self.SAMPLES:
            for b in self.SAMPLES:
                chip = Chip8()
                chip.v_regs[1], chip.v_regs[2] = a, b
                execute(chip, 0x8125)
                self.assertEqual(chip.v_regs[1], (a - b) & 0xFF)
                self.assertEqual(chip.v_regs[0xF], 1 if a >= b else 0)

                chip = Chip8()
                chip.v_regs[1], chip.v_regs[2] = a, b
                execute(chip, 0x8127)
                self.assertEqual(chip.v_regs[1], (b - a) & 0xFF)
                self.assertEqual(chip.v_regs[0xF], 1 if b >= a else 0)

    def test_flag_wins_over_result_in_vf(self):
        chip = boot(0x6FFF, 0x6101, 0x8F14)
        run(chip, 3)
        self.assertEqual(chip.v_regs[0xF], 1)

        chip = boot(0x6F01, 0x6102, 0x8F15)
        run(chip, 3)
        self.assertEqual(chip.v_regs[0xF], 0)

    def test_flag_uses_operands_before_the_write(self):
        # VF is both an operand and the destination of the flag
        chip = boot(0x60FF, 0x6F01, 0x80F4)
        run(chip, 3)
        self.assertEqual(chip.v_regs[0], 0)
        self.assertEqual(chip.v_regs[0xF], 1)

    def test_add_immediate_leaves_vf(self):
        chip = boot(0x60FF, 0x6F05, 0x7002)
        run(chip, 3)
        self.assertEqual(chip.v_regs[0], 1)
        self.assertEqual(chip.v_regs[0xF], 5)

    def test_logic(self):
        for opcode, result in ((0x8011, 0b1110), (0x8012, 0b1000), (0x8013, 0b0110)):
            chip = boot(0x600C, 0x610A, 0x6F07, opcode)
            run(chip, 4)
            self.assertEqual(chip.v_regs[0], result)
            self.assertEqual(chip.v_regs[0xF], 0)

    def test_set_register(self):
        chip = boot(0x6133, 0x8010)
        run(chip, 2)
        self.assertEqual(chip.v_regs[0], 0x33)

    def test_random(self):
        chip = boot(*[0xC00F] * 20, rng=random.Random(8))
        for _ in range(20):
            chip.step()
            self.assertEqual(chip.v_regs[0] & 0xF0, 0)


class TestMemoryInstructions(unittest.TestCase):
    def test_set_and_add_index(self):
        chip = boot(0xA123, 0x6010, 0xF01E)
        run(chip, 3)
        self.assertEqual(chip.idx, 0x133)

    def test_font_character(self):
        chip = boot(0x601A, 0xF029)
        run(chip, 2)
        self.assertEqual(chip.idx, 0x050 + 0xA * 5)

    def test_bcd(self):
        chip = boot(0x60EA, 0xA300, 0xF033)
        run(chip, 3)
        self.assertEqual(chip.mem[0x300:0x303], bytes([2, 3, 4]))

    def test_store_and_load(self):
        chip = boot(0x6001, 0x6102, 0x6203, 0xA300, 0xF255, 0xA300, 0x6000, 0xF165)
        run(chip, 5)
        self.assertEqual(chip.mem[0x300:0x304], bytes([1, 2, 3, 0]))
        self.assertEqual(chip.idx, 0x303)
        run(chip, 3)
        self.assertEqual(chip.v_regs[:3], [1, 2, 3])
        self.assertEqual(chip.idx, 0x302)

    def test_store_out_of_bounds_is_atomic(self):
        chip = boot(0x6007, 0x6108, 0xAFFF, 0xF155)
        run(chip, 3)
        with self.assertRaises(MemoryOutOfBounds):
            chip.step()
        self.assertEqual(chip.mem[0xFFF], 0)
        self.assertEqual(chip.idx, 0xFFF)
        self.assertEqual(chip.pc, 0x206)

    def test_store_into_the_font_is_rejected(self):
        chip = boot(0x60AA, 0xA050, 0xF055)
        run(chip, 2)
        with self.assertRaises(FontWriteProtected) as ctx:
            chip.step()
        self.assertIsInstance(ctx.exception, MemoryOutOfBounds)
        self.assertEqual(chip.mem[0x050:0x0A0], bytes(C8_FONTS))
        self.assertEqual(chip.idx, 0x050)
        self.assertEqual(chip.pc, 0x204)
        self.assertTrue(chip.halted)

    def test_store_straddling_the_font_writes_nothing(self):
        chip = boot(0x6011, 0x6122, 0x6233, 0xA04E, 0xF255)
        run(chip, 4)
        with self.assertRaises(FontWriteProtected):
            chip.step()
        self.assertEqual(chip.mem[0x04E:0x050], bytes(2))
        self.assertEqual(chip.mem[0x050], C8_FONTS[0])

    def test_bcd_into_the_font_is_rejected(self):
        chip = boot(0x60FF, 0xA09E, 0xF033)
        run(chip, 2)
        with self.assertRaises(FontWriteProtected):
            chip.step()
        self.assertEqual(chip.mem[0x050:0x0A0], bytes(C8_FONTS))

    def test_draw_collision(self):
        chip = boot(0xA050, 0x6003, 0x6104, 0xD015, 0xD015)
        run(chip, 4)
        self.assertEqual(chip.v_regs[0xF], 0)
        self.assertEqual(chip.framebuffer()[4][3:7], (1, 1, 1, 1))
        chip.step()
        self.assertEqual(chip.v_regs[0xF], 1)
        self.assertEqual(lit_pixels(chip), 0)

    def test_draw_reads_past_the_end(self):
        chip = boot(0xAFFE, 0xD003)
        chip.step()
        with self.assertRaises(MemoryOutOfBounds):
            chip.step()
        self.assertEqual(lit_pixels(chip), 0)


class TestQuirkPaths(unittest.TestCase):
    def shift(self, opcode, quirks):
        chip = Chip8(quirks=quirks)
        chip.v_regs[0], chip.v_regs[1] = 0x02, 0x81
        execute(chip, opcode)
        return chip.v_regs[0], chip.v_regs[0xF]

    def test_shift_source(self):
        self.assertEqual(self.shift(0x8016, Quirks(shift_uses_vy=True)), (0x40, 1))
        self.assertEqual(self.shift(0x8016, Quirks(shift_uses_vy=False)), (0x01, 0))
        self.assertEqual(self.shift(0x801E, Quirks(shift_uses_vy=True)), (0x02, 1))
        self.assertEqual(self.shift(0x801E, Quirks(shift_uses_vy=False)), (0x04, 0))

    def test_shift_quirk_leaves_other_families_alone(self):
        program = (0x60F0, 0x6133, 0x8014, 0x8125, 0x8203, 0xA050, 0xD015, 0x8017)
        states = []
        for flag in (True, False):
            chip = boot(*program, quirks=Quirks(shift_uses_vy=flag))
            run(chip, len(program))
            states.append((list(chip.v_regs), chip.framebuffer(), chip.idx))
        self.assertEqual(states[0], states[1])

    # one snippet per quirk-dependent family, plus a prelude of plain ALU work
    PRELUDE = (0x6005, 0x6133, 0x6281, 0x8014, 0x8125)
    FAMILIES = {
        "shift_uses_vy": (0x8326, 0x832E),
        "logic_resets_vf": (0x6F07, 0x8011, 0x8012, 0x8013),
        "load_store_increments_i": (0xA300, 0xF355, 0xF165),
        "clip_sprites": (0x6A3E, 0x6B1F, 0xA050, 0xDAB5),
        "jump_offset_uses_vx": (0x6000, 0x6200, None),   # None: BNNN to the next instruction
    }

    def program_without(self, family):
        words = list(self.PRELUDE)
        for name, snippet in self.FAMILIES.items():
            if name == family:
                continue
            for word in snippet:
                words.append(0xB000 | (0x200 + 2 * (len(words) + 1)) if word is None else word)
        return words

    def final_state(self, program, quirks):
        chip = boot(*program, quirks=quirks)
        run(chip, len(program))
        return list(chip.v_regs), chip.framebuffer(), chip.idx, chip.pc, chip.mem[0x300:0x310]

    def test_every_quirk_leaves_other_families_alone(self):
        self.assertEqual(set(self.FAMILIES), set(Quirks.names()))
        for name in Quirks.names():
            program = self.program_without(name)
            states = [self.final_state(program, Quirks().override(**{name: flag})) for flag in (True, False)]
            self.assertEqual(states[0], states[1], name)

    def test_load_store_index(self):
        chip = boot(0xA300, 0xF355, quirks=Quirks(load_store_increments_i=False))
        run(chip, 2)
        self.assertEqual(chip.idx, 0x300)
        chip = boot(0xA300, 0xF365, quirks=Quirks(load_store_increments_i=True))
        run(chip, 2)
        self.assertEqual(chip.idx, 0x304)

    def test_jump_offset(self):
        chip = boot(0x6004, 0x6208, 0xB210)
        run(chip, 3)
        self.assertEqual(chip.pc, 0x214)
        chip = boot(0x6004, 0x6208, 0xB210, quirks=Quirks(jump_offset_uses_vx=True))
        run(chip, 3)
        self.assertEqual(chip.pc, 0x218)

    def test_logic_vf_reset(self):
        chip = boot(0x6F05, 0x8011, quirks=Quirks(logic_resets_vf=False))
        run(chip, 2)
        self.assertEqual(chip.v_regs[0xF], 5)

    def test_sprite_clipping(self):
        program = (0x603E, 0x611F, 0xA050, 0xD015)
        chip = boot(*program, quirks=Quirks(clip_sprites=True))
        run(chip, 4)
        self.assertEqual(lit_pixels(chip), 2)
        chip = boot(*program)
        run(chip, 4)
        self.assertEqual(lit_pixels(chip), 14)

    def test_configure_between_steps(self):
        chip = boot(0x8016, 0x8016)
        chip.v_regs[0], chip.v_regs[1] = 0x08, 0x02
        chip.step()
        self.assertEqual(chip.v_regs[0], 0x01)
        chip.configure(Quirks(shift_uses_vy=False))
        chip.step()
        self.assertEqual(chip.v_regs[0], 0x00)


class TestTimersAndKeys(unittest.TestCase):
    def test_timers(self):
        chip = boot(0x6005, 0xF015, 0xF018, 0xF107)
        run(chip, 3)
        chip.tick_timers()
        chip.step()
        self.assertEqual(chip.v_regs[1], 4)
        self.assertEqual(chip.sound_timer(), 4)
        for _ in range(10):
            chip.tick_timers()
        self.assertEqual((chip.delay_timer(), chip.sound_timer()), (0, 0))

    def test_skip_if_pressed(self):
        chip = boot(0x6005, 0xE09E)
        chip.set_key(5, True)
        run(chip, 2)
        self.assertEqual(chip.pc, 0x206)
        self.assertTrue(chip.is_key_pressed(5))

        chip = boot(0x6005, 0xE0A1)
        run(chip, 2)
        self.assertEqual(chip.pc, 0x206)

    def test_held_key_survives_load(self):
        chip = Chip8()
        chip.set_key(5, True)
        chip.load(rom(0x6005, 0xE09E))
        run(chip, 2)
        self.assertEqual(chip.pc, 0x206)
        self.assertTrue(chip.is_key_pressed(5))

    def test_load_drops_queued_presses(self):
        chip = Chip8()
        chip.set_key(5, True)
        chip.load(rom(0xF00A))
        self.assertTrue(chip.keypad.untouched())
        self.assertTrue(chip.is_key_pressed(5))

    def test_reset_releases_keys(self):
        chip = Chip8()
        chip.set_key(5, True)
        chip.reset()
        self.assertFalse(chip.is_key_pressed(5))

    def test_bad_key(self):
        with self.assertRaises(ValueError):
            Chip8().set_key(16, True)

    def test_wait_for_key(self):
        chip = boot(0x6040, 0xF30A, 0x6101)
        chip.step()
        self.assertIsNotNone(chip.step())
        self.assertTrue(chip.waiting_for_key)
        self.assertIsNone(chip.step())
        self.assertEqual(chip.pc, 0x204)

        chip.set_key(7, True)
        self.assertIsNone(chip.step())
        self.assertFalse(chip.waiting_for_key)
        self.assertEqual(chip.v_regs[3], 7)
        chip.step()
        self.assertEqual(chip.v_regs[1], 1)

    def test_wait_needs_a_new_press(self):
        chip = boot(0xF00A)
        chip.set_key(2, True)
        chip.step()
        chip.step()
        self.assertTrue(chip.waiting_for_key)
        chip.set_key(2, False)
        chip.set_key(2, True)
        chip.step()
        self.assertFalse(chip.waiting_for_key)
        self.assertEqual(chip.v_regs[0], 2)

    def test_timers_tick_while_waiting(self):
        chip = boot(0x6003, 0xF015, 0xF00A)
        run(chip, 3)
        self.assertTrue(chip.waiting_for_key)
        chip.tick_timers()
        chip.step()
        chip.tick_timers()
        self.assertEqual(chip.delay_timer(), 1)


if __name__ == "__main__":
    unittest.main()
