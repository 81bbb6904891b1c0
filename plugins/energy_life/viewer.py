"""
Interactive Pygame Viewer for Energy Life 3D

Shows the ray-marched view of the simulation with a one-line HUD.

Controls:
  W/A/S/D     Pan the orbit centre (held)
  Mouse drag  Rotate camera
  Wheel       Zoom
  SPACE       Pause / Resume stepping
  0 1 2 5     Simulation speed (sub-steps per frame)
  R           Reseed field
  G           Cycle grid size
  P           Cycle palette
  N           Cycle neighbor stencil (6 / 18 / 26)
  Z X C V     Toggle energy bands (low .. high)
  O, Ctrl+S   Save snapshot (PNG + JSON)
  H           Toggle HUD overlay
  Q / ESC     Quit
"""

import os
import time

import numpy as np
import pygame

from .colormaps import PALETTE_NAMES
from .kernel import NEIGHBOR_MODES
from .presets import GRID_SIZE_PRESETS, SPEED_OPTIONS, get_preset
from .simulation import EnergyLifeSimulation

_PAN_KEYS = {
    pygame.K_w: "forward",
    pygame.K_s: "back",
    pygame.K_a: "left",
    pygame.K_d: "right",
}
_SPEED_KEYS = {getattr(pygame, f"K_{n}"): n for n in SPEED_OPTIONS}
_BAND_KEYS = {
    pygame.K_z: 0,
    pygame.K_x: 1,
    pygame.K_c: 2,
    pygame.K_v: 3,
}


def _next_in(seq, current):
    """Next element after current in seq (wrapping); first if not present."""
    seq = list(seq)
    if current in seq:
        return seq[(seq.index(current) + 1) % len(seq)]
    return seq[0]


class Viewer:

    def __init__(self, width=800, height=800, grid_size=64, render_size=256,
                 start_preset="default", noise_seed=None):
        self.width = width
        self.height = height
        self.render_size = render_size
        self.running = True
        self.show_hud = True
        self.paused_speed = None      # speed to restore on un-pause
        self.dragging = False
        self.snapshot_dir = os.path.join(os.getcwd(), "snapshots")

        aspect = width / height
        self.sim = EnergyLifeSimulation(
            grid_size=grid_size,
            render_size=(max(1, int(render_size * aspect)), render_size),
            preset=start_preset,
            noise_seed=noise_seed,
            on_fps=self._on_fps,
        )
        self.fps = 0.0

    def _on_fps(self, fps):
        self.fps = fps

    # ── Input ────────────────────────────────────────────────────────────

    def handle_keydown(self, key):
        sim = self.sim

        if key in (pygame.K_q, pygame.K_ESCAPE):
            self.running = False

        elif key in _PAN_KEYS:
            sim.set_pan_key_state(_PAN_KEYS[key], True)

        elif key == pygame.K_SPACE:
            if self.paused_speed is None:
                self.paused_speed = sim.speed or 1
                sim.set_speed(0)
            else:
                sim.set_speed(self.paused_speed)
                self.paused_speed = None

        elif key in _SPEED_KEYS:
            self.paused_speed = None
            sim.set_speed(_SPEED_KEYS[key])

        elif key == pygame.K_r:
            sim.reseed()

        elif key == pygame.K_g:
            sim.resize_grid(_next_in(GRID_SIZE_PRESETS, sim.field.size))

        elif key == pygame.K_p:
            mode = sim.get_parameter("palette_mode")
            sim.set_parameter("palette_mode", (mode + 1) % len(PALETTE_NAMES))

        elif key == pygame.K_n:
            mode = sim.get_parameter("neighbor_mode")
            sim.set_parameter("neighbor_mode", _next_in(NEIGHBOR_MODES, mode))

        elif key in _BAND_KEYS:
            mask = sim.get_parameter("energy_filter")
            sim.set_parameter("energy_filter", mask ^ (1 << _BAND_KEYS[key]))

        elif key == pygame.K_h:
            self.show_hud = not self.show_hud

        elif key == pygame.K_o:
            self.save_snapshot()

    def handle_keyup(self, key):
        if key in _PAN_KEYS:
            self.sim.set_pan_key_state(_PAN_KEYS[key], False)

    def handle_event(self, event):
        if event.type == pygame.QUIT:
            self.running = False
        elif event.type == pygame.KEYDOWN:
            # S is both "back" and "snapshot": snapshot needs a modifier
            if event.key == pygame.K_s and event.mod & (pygame.KMOD_CTRL | pygame.KMOD_META):
                self.save_snapshot()
            else:
                self.handle_keydown(event.key)
        elif event.type == pygame.KEYUP:
            self.handle_keyup(event.key)
        elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            self.dragging = True
        elif event.type == pygame.MOUSEBUTTONUP and event.button == 1:
            self.dragging = False
        elif event.type == pygame.MOUSEMOTION and self.dragging:
            dx, dy = event.rel
            self.sim.adjust_rotation(dx, dy)
        elif event.type == pygame.MOUSEWHEEL:
            self.sim.adjust_distance(-event.y)

    # ── Output ───────────────────────────────────────────────────────────

    def save_snapshot(self):
        stem = f"el_{self.sim.preset_key}_{time.strftime('%Y%m%d_%H%M%S')}"
        self.sim.export_snapshot(self.snapshot_dir, stem)

    def _draw_hud(self, screen):
        if not self.show_hud:
            return

        stats = self.sim.stats
        preset = get_preset(self.sim.preset_key)
        palette = PALETTE_NAMES[self.sim.get_parameter("palette_mode")]
        line = (f"{preset['name']}  |  {stats['grid_size']}^3  |  "
                f"Speed: {stats['speed']}x  |  "
                f"Avg: {stats['global_average']:.4f}  |  "
                f"N{self.sim.get_parameter('neighbor_mode')}  |  {palette}  |  "
                f"Bands: {self.sim.get_parameter('energy_filter'):04b}  |  "
                f"FPS: {self.fps:.0f}")
        if stats["speed"] == 0:
            line = "[PAUSED]  " + line
        if self.sim.error is not None:
            line = "[DEVICE ERROR]  " + line

        padding = 6
        bg_height = 24
        bg_surface = pygame.Surface((self.width, bg_height), pygame.SRCALPHA)
        bg_surface.fill((0, 0, 0, 140))
        screen.blit(bg_surface, (0, 0))

        text_surface = self.hud_font.render(line, True, (210, 215, 225))
        screen.blit(text_surface, (padding + 4, padding))

    def run(self):
        """Main viewer loop."""
        pygame.init()

        screen = pygame.display.set_mode((self.width, self.height))
        pygame.display.set_caption("Energy Life 3D")
        clock = pygame.time.Clock()
        self.hud_font = pygame.font.SysFont("menlo", 13)

        try:
            while self.running:
                for event in pygame.event.get():
                    self.handle_event(event)

                image = self.sim.frame()
                if image is not None:
                    surface = pygame.surfarray.make_surface(
                        np.ascontiguousarray(image.swapaxes(0, 1)))
                    scaled = pygame.transform.smoothscale(surface, (self.width, self.height))
                    screen.blit(scaled, (0, 0))

                self._draw_hud(screen)
                pygame.display.flip()
                clock.tick(60)
        finally:
            self.sim.close()
            pygame.quit()
