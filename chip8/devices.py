SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
KEY_COUNT = 16


# ******************** FRAMEBUFFER SECTION
class Framebuffer:
    """
    64x32 monochrome bit grid, stored row-major in a flat bytearray (one byte per pixel)
    the only write paths are draw_sprite (XOR) and clear
    """
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        self.w, self.h = w, h
        self.buffer = bytearray(w * h)

    def __getitem__(self, pos):
        x, y = pos
        return self.buffer[y * self.w + x]

    def clear(self):
        self.buffer = bytearray(self.w * self.h)

    def draw_sprite(self, x, y, rows, clip=False):
        """
        XOR the sprite rows (one byte each, MSB is the leftmost pixel) at (x, y)
        the starting position always wraps around the screen, the pixels that fall past
        the right/bottom edge either wrap too or get clipped
        return True if any pixel went from ON to OFF
        """
        x, y = x % self.w, y % self.h
        collision = False
        for i, sprite_byte in enumerate(rows):
            row = y + i
            if row >= self.h:
                if clip:
                    break
                row %= self.h
            for j in range(8):
                if not (sprite_byte >> (7 - j)) & 0x1:
                    continue
                col = x + j
                if col >= self.w:
                    if clip:
                        break
                    col %= self.w
                offset = row * self.w + col
                # the only case when a pixel gets erased is when it was ON and is turned ON again
                if self.buffer[offset]:
                    collision = True
                self.buffer[offset] ^= 1
        return collision

    def snapshot(self):
        """immutable copy of the grid, one tuple of 0/1 per row"""
        return tuple(tuple(self.buffer[r * self.w:(r + 1) * self.w]) for r in range(self.h))


# ******************** KEYPAD SECTION
class Keypad:
    """
    current state of the 16 keys plus a queue of the keys that went from released to pressed,
    the queue is what the key-wait instruction consumes
    """
    def __init__(self):
        self.states = [False] * KEY_COUNT
        self.pressed_keys = []

    def __getitem__(self, key):
        return self.states[self._index(key)]

    def __setitem__(self, key, pressed):
        key = self._index(key)
        if pressed and not self.states[key]:
            self.pressed_keys.append(key)
        self.states[key] = bool(pressed)

    @staticmethod
    def _index(key):
        if not 0 <= key < KEY_COUNT:
            raise ValueError(f"The CHIP-8 keypad has keys 0x0-0xF, got {key}")
        return key

    def untouched(self):
        return len(self.pressed_keys) == 0

    def first(self):
        """get first button pressed present in the queue"""
        return self.pressed_keys.pop(0)

    def forget_presses(self):
        self.pressed_keys.clear()

    def reset(self):
        self.states = [False] * KEY_COUNT
        self.pressed_keys.clear()


# ******************** TIMERS SECTION
class Timers:
    """delay and sound timers, both 8 bit and decremented towards zero at 60Hz"""
    def __init__(self):
        self.delay = 0
        self.sound = 0

    def __setattr__(self, name, value):
        super().__setattr__(name, value & 0xFF)

    def tick(self):
        if self.delay > 0:
            self.delay -= 1
        if self.sound > 0:
            self.sound -= 1

    def reset(self):
        self.delay = 0
        self.sound = 0
