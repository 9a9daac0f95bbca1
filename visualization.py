# visualization.py
"""
Handles the visualization of the particle simulation using Pygame.

The renderer is passive: once per display frame it reads positions and
types and draws a small disc per particle. It never writes particle state.
"""
import logging
import pygame
import numpy as np
from particle import ParticleSystem
from constants import (
    BACKGROUND_COLOR, PARTICLE_SIZE, TYPE_HUE_STEP, TYPE_SATURATION, TYPE_VALUE
)
from typing import Optional

# --- Data Contracts ---
#
# type_colors(particle_types: int, base_hue: float, config_colors: Optional[list] = None) -> list:
#   - One pygame.Color per type. Config colors are used first; any missing
#     types get HSV(base_hue + 97 * index, 60%, 100%).
#
# world_to_screen(positions, width, height, screen_width, screen_height) -> np.ndarray:
#   - Maps centered, y-up world coordinates to integer pixel coordinates.
#
# draw_particles(surface, positions, types, colors, particle_size, width, height) -> None:
#   - Side Effects: draws onto `surface` only.
#
# class Visualizer:
#   - __init__(self, particle_types: int, world_width: float, world_height: float,
#              vis_params: Optional[dict] = None, base_hue: Optional[float] = None):
#     - Side Effects: Initializes Pygame and creates a display surface.
#   - draw(self, particles: ParticleSystem) -> bool:
#     - Outputs: False if the user has quit (window close or ESC), True otherwise.


def type_colors(particle_types: int, base_hue: float, config_colors: Optional[list] = None) -> list:
    """Static per-type colors, assigned once at startup."""
    colors = []
    if config_colors:
        try:
            colors = [pygame.Color(*rgb) for rgb in config_colors[:particle_types]]
        except (ValueError, TypeError) as e:
            logging.error(f"Could not parse colors from config due to invalid format: {e}. Falling back to generated hues.")
            colors = []

    for index in range(len(colors), particle_types):
        color = pygame.Color(0, 0, 0)
        color.hsva = ((base_hue + TYPE_HUE_STEP * index) % 360.0, TYPE_SATURATION, TYPE_VALUE, 100)
        colors.append(color)
    return colors


def world_to_screen(positions: np.ndarray, width: float, height: float,
                    screen_width: int, screen_height: int) -> np.ndarray:
    scale_x = screen_width / width
    scale_y = screen_height / height
    screen = np.empty_like(positions, dtype=np.float64)
    screen[:, 0] = (positions[:, 0] + width / 2.0) * scale_x
    # World y points up, screen y points down.
    screen[:, 1] = (height / 2.0 - positions[:, 1]) * scale_y
    return screen.astype(np.int32)


def draw_particles(surface: pygame.Surface, positions: np.ndarray, types: np.ndarray,
                   colors: list, particle_size: float, width: float, height: float) -> None:
    screen_w, screen_h = surface.get_size()
    pixels = world_to_screen(positions, width, height, screen_w, screen_h)
    radius = max(1, int(round(particle_size)))
    for (x, y), p_type in zip(pixels, types):
        pygame.draw.circle(surface, colors[p_type], (int(x), int(y)), radius)


class Visualizer:
    """
    Owns the window and draws the particle system each frame.
    """
    def __init__(self, particle_types: int, world_width: float, world_height: float,
                 vis_params: Optional[dict] = None, base_hue: Optional[float] = None):
        vis_params = vis_params if vis_params is not None else {}
        pygame.init()

        width = int(vis_params.get('window_width', world_width))
        height = int(vis_params.get('window_height', world_height))
        self.screen = pygame.display.set_mode((width, height))
        pygame.display.set_caption("Particle Life")
        self.clock = pygame.time.Clock()

        self.world_width = world_width
        self.world_height = world_height
        self.particle_size = float(vis_params.get('particle_size', PARTICLE_SIZE))
        self.fps = int(vis_params.get('fps', 0))
        if base_hue is None:
            base_hue = float(vis_params.get('base_hue', 0.0))
        self.colors = type_colors(particle_types, base_hue, vis_params.get('particle_colors'))

        logging.info(f"Visualizer initialized with Pygame display ({width}x{height}).")

    def tick_clock(self) -> float:
        """Waits for the frame cap and returns the seconds since the last frame."""
        return self.clock.tick(self.fps) / 1000.0

    def draw(self, particles: ParticleSystem) -> bool:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logging.info("Quit event received. Shutting down visualizer.")
                return False
            if event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                logging.info("ESC key pressed. Shutting down visualizer.")
                return False

        self.screen.fill(BACKGROUND_COLOR)
        draw_particles(
            self.screen, particles.positions, particles.types, self.colors,
            self.particle_size, self.world_width, self.world_height
        )
        pygame.display.flip()
        return True

    def close(self):
        """Shuts down Pygame."""
        pygame.quit()
