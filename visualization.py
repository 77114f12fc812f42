# visualization.py
"""
Renders the active weather effect using Pygame.

The view is a top-down orthographic projection of world x/y (z is height)
that follows the parent transform, the way the camera follows the scene
origin. Each emitter's instance buffer is drawn as circles, skipping the
parked slots.
"""
import logging
import pygame
import numpy as np
from typing import Any, List, Tuple

from constants import (
    BACKGROUND_COLOR, CREATION_ZONE_COLOR, DEFAULT_ZOOM, FPS, HUD_TEXT_COLOR,
    MIN_DRAW_RADIUS, PAN_SPEED, WINDOW_HEIGHT, WINDOW_WIDTH, ZONE_COLOR
)
from simulation import ParticleSimulation
from transform import ParentTransform
from volume import Volume
from weather import WeatherRegistry

# --- Data Contracts ---
#
# class Visualizer:
#   - __init__(self, zoom: float = DEFAULT_ZOOM, debug: bool = False):
#     - Side Effects: Initializes Pygame and creates a display surface.
#
#   - draw(self, registry: WeatherRegistry, parent: ParentTransform, dt: float) -> bool:
#     - Inputs:
#       - registry: its active effect's instance buffers are drawn.
#       - parent: the frame the view follows; arrow keys translate it.
#       - dt: seconds since the last frame, used for panning.
#     - Outputs:
#       - bool: False if the user has quit, True otherwise.
#     - Side Effects: Renders to the screen, handles Pygame events and can
#       switch the registry's active weather.
#
#   - frame_time(self) -> float:
#     - Outputs: seconds since the previous call, capped at FPS.


class Visualizer:
    """
    Draws instance buffers and the debug overlay, and turns key presses
    into weather changes and panning.
    """
    def __init__(self, zoom: float = DEFAULT_ZOOM, debug: bool = False):
        pygame.init()
        pygame.font.init()

        self.screen = pygame.display.set_mode((WINDOW_WIDTH, WINDOW_HEIGHT))
        pygame.display.set_caption("Weather Particles")
        self.clock = pygame.time.Clock()

        self.zoom = zoom
        self.debug = debug
        self.center = (WINDOW_WIDTH / 2, WINDOW_HEIGHT / 2)
        self.layer = pygame.Surface((WINDOW_WIDTH, WINDOW_HEIGHT), pygame.SRCALPHA)

        try:
            self.font = pygame.font.SysFont("Segoe UI", 14)
        except pygame.error:
            logging.warning("Segoe UI font not found, falling back to default sans-serif.")
            self.font = pygame.font.SysFont(None, 18)

        logging.info(f"Visualizer initialized with Pygame display ({WINDOW_WIDTH}x{WINDOW_HEIGHT}).")

    def frame_time(self) -> float:
        return self.clock.tick(FPS) / 1000.0

    def _to_screen(self, x: float, y: float, origin: np.ndarray) -> Tuple[int, int]:
        sx = self.center[0] + (x - origin[0]) * self.zoom
        # Screen y grows downwards, world y upwards
        sy = self.center[1] - (y - origin[1]) * self.zoom
        return int(sx), int(sy)

    def _parse_color(self, value: Any, opacity: float) -> pygame.Color:
        try:
            color = pygame.Color(value)
        except (ValueError, TypeError) as e:
            logging.error(f"Could not parse particle color {value!r}: {e}. Falling back to white.")
            color = pygame.Color(255, 255, 255)
        color.a = int(255 * min(max(opacity, 0.0), 1.0))
        return color

    def _handle_events(self, registry: WeatherRegistry) -> bool:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logging.info("Quit event received. Shutting down visualizer.")
                return False

            if event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    logging.info("ESC key pressed. Shutting down visualizer.")
                    return False
                if event.key == pygame.K_d:
                    self.debug = not self.debug
                    logging.info(f"Debug overlay {'enabled' if self.debug else 'disabled'}.")
                # Number keys pick a weather type by its position in the registry
                index = event.key - pygame.K_1
                if 0 <= index < min(len(registry.names), 9):
                    registry.change(registry.names[index])
        return True

    def _pan(self, parent: ParentTransform, dt: float) -> None:
        keys = pygame.key.get_pressed()
        dx = (keys[pygame.K_RIGHT] - keys[pygame.K_LEFT]) * PAN_SPEED * dt
        dy = (keys[pygame.K_UP] - keys[pygame.K_DOWN]) * PAN_SPEED * dt
        if dx or dy:
            parent.translate((dx, dy, 0.0))

    def _draw_buffer(self, simulation: ParticleSimulation, origin: np.ndarray) -> None:
        sink = simulation.sink
        if sink is None or sink.matrices is None:
            return
        color = self._parse_color(sink.color, sink.opacity)
        matrices = sink.matrices
        visible = np.nonzero(matrices[:, 0, 0] > 0)[0]

        self.layer.fill((0, 0, 0, 0))
        for i in visible:
            m = matrices[i]
            radius = max(MIN_DRAW_RADIUS, int(m[0, 0] * self.zoom))
            pygame.draw.circle(self.layer, color, self._to_screen(m[0, 3], m[1, 3], origin), radius)
        self.screen.blit(self.layer, (0, 0))

    def _draw_volume(self, volume: Volume, parent: ParentTransform, origin: np.ndarray, color: Tuple[int, int, int]) -> None:
        corners = parent.local_to_world(np.array([volume.minimum, volume.maximum]))
        x0, y0 = self._to_screen(corners[0, 0], corners[1, 1], origin)
        x1, y1 = self._to_screen(corners[1, 0], corners[0, 1], origin)
        pygame.draw.rect(self.screen, color, pygame.Rect(x0, y0, max(1, x1 - x0), max(1, y1 - y0)), 1)

    def _draw_debug(self, simulations: List[ParticleSimulation], parent: ParentTransform, origin: np.ndarray) -> None:
        for simulation in simulations:
            if not (self.debug or simulation.debug):
                continue
            self._draw_volume(simulation.zone, parent, origin, ZONE_COLOR)
            for zone in simulation.creation_zones:
                self._draw_volume(zone, parent, origin, CREATION_ZONE_COLOR)

    def _draw_hud(self, registry: WeatherRegistry) -> None:
        lines = [
            f"Weather: {registry.active_name}  ({registry.active.live_count()} particles)",
            "  ".join(f"[{i + 1}] {name}" for i, name in enumerate(registry.names[:9])),
            "Arrows: pan   D: debug   Esc: quit",
        ]
        y = 10
        for line in lines:
            surf = self.font.render(line, True, HUD_TEXT_COLOR)
            self.screen.blit(surf, (10, y))
            y += self.font.get_linesize()

    def draw(self, registry: WeatherRegistry, parent: ParentTransform, dt: float) -> bool:
        """
        Draws the active weather and handles events.

        Returns:
            bool: False if the loop should exit, True otherwise.
        """
        if not self._handle_events(registry):
            return False
        self._pan(parent, dt)

        origin = parent.position
        simulations = registry.active.simulations

        self.screen.fill(BACKGROUND_COLOR)
        for simulation in simulations:
            self._draw_buffer(simulation, origin)
        self._draw_debug(simulations, parent, origin)
        self._draw_hud(registry)

        pygame.display.flip()
        return True

    def close(self):
        """Shuts down Pygame."""
        pygame.font.quit()
        pygame.quit()
