import argparse
import logging
import sys
from array import array

import os
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "no welcome message")   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_0, K_1, K_2, K_3,
    K_4, K_5, K_6, K_7,
    K_8, K_9, K_a, K_b,
    K_c, K_d, K_e, K_f,
)

from .cpu import Chip8
from .devices import SCREEN_HEIGHT, SCREEN_WIDTH
from .errors import Chip8Error
from .opcodes import disassemble_rom
from .quirks import PRESETS, Quirks, preset
from .scheduler import DEFAULT_IPS, Scheduler

logger = logging.getLogger(__name__)


# ******************** STATIC SECTION
KEY_MAPPINGS = {
    K_0: 0x0,
    K_1: 0x1,
    K_2: 0x2,
    K_3: 0x3,
    K_4: 0x4,
    K_5: 0x5,
    K_6: 0x6,
    K_7: 0x7,
    K_8: 0x8,
    K_9: 0x9,
    K_a: 0xA,
    K_b: 0xB,
    K_c: 0xC,
    K_d: 0xD,
    K_e: 0xE,
    K_f: 0xF,
}

DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False
FPS = 60
SCALE = 15
BLUE = pygame.Color(80, 69, 155, 255)
LIGHT_BLUE = pygame.Color(136, 126, 203, 255)
TONE_HZ = 440
SAMPLE_RATE = 44100


# ******************** UTILITIES SECTION
def get_args(argv=None):
    parser = argparse.ArgumentParser(prog="chip8", description="CHIP-8 interpreter")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("--ips", type=int, default=DEFAULT_IPS, help="instructions executed per second")
    parser.add_argument("--scale", type=int, default=SCALE, help="size in window pixels of a CHIP-8 pixel")
    parser.add_argument("--quirks", choices=sorted(PRESETS), default="chip8", help="compatibility quirks preset")
    for name in Quirks.names():
        parser.add_argument(
            "--" + name.replace("_", "-"),
            action=argparse.BooleanOptionalAction,
            default=None,
            help=f"override the preset's {name} quirk",
        )
    parser.add_argument("--debug", action="store_true", default=DEBUG, help="trace every instruction")
    parser.add_argument("--disassemble", action="store_true", help="print the ROM as assembly and exit")
    args = parser.parse_args(argv)
    if args.ips <= 0 or args.scale <= 0:
        parser.error("--ips and --scale must be positive")
    return args

def build_quirks(args):
    return preset(args.quirks, **{name: getattr(args, name) for name in Quirks.names()})

def read_rom(path):
    with open(path, mode='rb') as f:
        return f.read()


# ******************** I/O SECTION
class Screen:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        self.last_frame = None
        self.surface = pygame.display.set_mode(
            (w * self.scale, h * self.scale),
        )
        self.surface.fill(self.background)

    def render(self, frame):
        """draw a framebuffer snapshot, return False when nothing changed since the last one"""
        if frame == self.last_frame:
            return False
        self.surface.fill(self.background)
        for y, row in enumerate(frame):
            for x, pixel in enumerate(row):
                if pixel:
                    pygame.draw.rect(
                        self.surface,
                        self.foreground,
                        (x * self.scale, y * self.scale, self.scale, self.scale)
                    )
        self.last_frame = frame
        return True

    @staticmethod
    def refresh():
        pygame.display.flip()


def tone_samples(freq, rate, channels):
    """one second of a 16 bit square wave, every sample repeated once per channel"""
    period = rate // freq
    wave = [8000] * (period // 2) + [-8000] * (period - period // 2)
    return array("h", [s for s in wave for _ in range(channels)] * freq)


class Beeper:
    """square wave played in loop while the sound timer is nonzero"""
    def __init__(self, freq=TONE_HZ):
        self.playing = False
        self.sound = None
        try:
            if not pygame.mixer.get_init():
                pygame.mixer.init(frequency=SAMPLE_RATE, size=-16, channels=1)
        except pygame.error as exc:
            logger.warning("Sound disabled: %s", exc)
            return
        # the buffer has to follow the format the mixer actually got
        rate, _, channels = pygame.mixer.get_init()
        self.sound = pygame.mixer.Sound(buffer=tone_samples(freq, rate, channels).tobytes())

    def update(self, sound_timer):
        if self.sound is None:
            return
        if sound_timer > 0 and not self.playing:
            self.sound.play(loops=-1)
            self.playing = True
        elif sound_timer == 0 and self.playing:
            self.sound.stop()
            self.playing = False


# ******************** ENTRY POINT SECTION
def main(argv=None):
    args = get_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        rom = read_rom(args.file)
    except OSError as exc:
        sys.exit(f"Can't read the ROM file: {exc}")

    if args.disassemble:
        for address, word, text in disassemble_rom(rom):
            print(f"0x{address:04x}    {word:04x}    {text}")
        return 0

    chip = Chip8(quirks=build_quirks(args))
    try:
        chip.load(rom)
    except Chip8Error as exc:
        sys.exit(str(exc))
    logger.info("Loaded %s (%d bytes) with %s", args.file, len(rom), chip.quirks)

    # pygame initialization, the mixer format must be set before pygame.init() starts it
    pygame.mixer.pre_init(SAMPLE_RATE, -16, 1)
    pygame.init()
    pygame.display.set_caption(os.path.basename(args.file))
    clock = pygame.time.Clock()
    screen = Screen(s=args.scale)
    beeper = Beeper()
    scheduler = Scheduler(chip, ips=args.ips)
    scheduler.start()
    try:
        # render/input loop, the CPU and the timers run in the scheduler threads
        run = True
        while run:
            clock.tick(FPS)
            for event in pygame.event.get():
                if event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE:
                        run = False
                    elif event.key in KEY_MAPPINGS:
                        chip.set_key(KEY_MAPPINGS[event.key], True)
                elif event.type == pygame.KEYUP:
                    if event.key in KEY_MAPPINGS:
                        chip.set_key(KEY_MAPPINGS[event.key], False)
                elif event.type == pygame.QUIT:
                    run = False
            if screen.render(chip.framebuffer()):
                screen.refresh()
            beeper.update(chip.sound_timer())
            if scheduler.cpu_done.is_set():
                run = False
    finally:
        scheduler.stop()
        pygame.quit()

    if scheduler.error is not None:
        sys.exit(f"********** THE EMULATOR CRASHED WITH THE FOLLOWING STATE\n{chip}")
    return 0
