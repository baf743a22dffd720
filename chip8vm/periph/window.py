"""
CHIP-8 Virtual Machine - pygame Window Front End

The playable front end: a scaled 64 x 32 window and the host keyboard.

  present(state)  same contract as ConsoleDisplay: draw when the redraw
                  flag is set, then clear it
  poll()          drain the pygame event queue once per scheduler frame,
                  feeding KEYDOWN / KEYUP through the InputBinder; returns
                  False once the window is closed (or Esc is pressed)

Keys are resolved by pygame's key name ('1', 'q', ...), so the binder's
1234 / qwer / asdf / zxcv layout applies unchanged.
"""

import logging
import os

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
import pygame

from ..config import SCREEN_HEIGHT, SCREEN_WIDTH
from .keypad import InputBinder

log = logging.getLogger(__name__)

SCALE_FACTOR = 10
PIXEL_ON = (255, 255, 255)
PIXEL_OFF = (0, 0, 0)


class PygameWindow:
    """Window display + keyboard input for one emulator session."""

    def __init__(self, binder: InputBinder, scale: int = SCALE_FACTOR,
                 title: str = "chip8vm"):
        if scale <= 0:
            raise ValueError("scale must be positive")
        pygame.init()
        self.binder = binder
        self.scale = scale
        self.surface = pygame.display.set_mode(
            (SCREEN_WIDTH * scale, SCREEN_HEIGHT * scale))
        pygame.display.set_caption(title)
        self.surface.fill(PIXEL_OFF)
        self.frames = 0
        self.closed = False

    def poll(self) -> bool:
        """Apply pending key events. False once the user asked to quit."""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.closed = True
            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    self.closed = True
                elif self.binder.key_down(pygame.key.name(event.key)) is None:
                    log.debug("Unbound key %s", pygame.key.name(event.key))
            elif event.type == pygame.KEYUP:
                self.binder.key_up(pygame.key.name(event.key))
        return not self.closed

    def present(self, state) -> bool:
        if not state.needs_redraw:
            return False
        s = self.scale
        self.surface.fill(PIXEL_OFF)
        for y, row in enumerate(state.framebuffer.rows()):
            for x, cell in enumerate(row):
                if cell:
                    self.surface.fill(PIXEL_ON, pygame.Rect(x * s, y * s, s, s))
        pygame.display.flip()
        state.needs_redraw = False
        self.frames += 1
        return True

    def close(self):
        pygame.quit()
