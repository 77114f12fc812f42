# weather.py
"""
Weather effects built from particle emitters, and the registry that
switches between them.

A WeatherEffect groups several ParticleSimulation instances that are
set up, ticked and released together. The WeatherRegistry owns every
configured effect and keeps exactly one of them active. Callers that want
to switch weather at runtime are handed the registry itself.
"""
import copy
import logging
import numpy as np
from typing import Any, Dict, List, Optional

from constants import DEFAULT_LIMIT
from simulation import ParticleSimulation
from transform import ParentTransform

# --- Data Contracts ---
#
# class WeatherEffect:
#   - __init__(self, name: str, systems: List[Dict[str, Any]], strength: float = 1.0):
#     - Inputs:
#       - systems: engine parameter dicts (see ParticleSimulation.from_params).
#       - strength: multiplier applied to every system's `limit`.
#   - setup(self, parent, seed_sequence) -> None:
#     - Side Effects: builds and attaches one fresh emitter per system.
#   - update(self, dt) -> None: ticks every emitter.
#   - dispose(self) -> None: releases and forgets every emitter.
#
# class WeatherRegistry:
#   - __init__(self, effects: Dict[str, WeatherEffect], active: str, seed=None):
#     - Side Effects: Raises KeyError if `active` is unknown.
#   - change(self, name: str) -> None:
#     - Side Effects: disposes the active effect and sets up `name` if the
#       registry has been set up. Raises KeyError for unknown names.
#
# build_registry(config: Dict[str, Any]) -> WeatherRegistry:
#   - Inputs: the full config; reads the "weather" section.


class WeatherEffect:
    """A named group of particle emitters that run as one effect."""
    def __init__(self, name: str, systems: List[Dict[str, Any]], strength: float = 1.0):
        if strength < 0:
            msg = f"Configuration error: weather '{name}' has negative strength {strength}."
            logging.critical(msg)
            raise ValueError(msg)
        self.name = name
        self.systems = [self._scaled(params, strength) for params in systems]
        self.strength = strength
        self.simulations: List[ParticleSimulation] = []

    @staticmethod
    def _scaled(params: Dict[str, Any], strength: float) -> Dict[str, Any]:
        params = copy.deepcopy(params)
        params['limit'] = int(params.get('limit', DEFAULT_LIMIT) * strength)
        return params

    def setup(self, parent: ParentTransform, seed_sequence: np.random.SeedSequence) -> None:
        if self.simulations:
            raise RuntimeError(f"Weather '{self.name}' is already set up.")
        children = seed_sequence.spawn(len(self.systems))
        for params, child in zip(self.systems, children):
            simulation = ParticleSimulation.from_params(params, rng=np.random.default_rng(child))
            simulation.attach(parent)
            self.simulations.append(simulation)
        logging.info(f"Weather '{self.name}' set up with {len(self.simulations)} particle systems.")

    def update(self, dt: float) -> None:
        for simulation in self.simulations:
            simulation.tick(dt)

    def live_count(self) -> int:
        return sum(simulation.live_count for simulation in self.simulations)

    def dispose(self) -> None:
        for simulation in self.simulations:
            simulation.release()
        self.simulations = []


class WeatherRegistry:
    """
    Owns every configured weather effect and tracks the active one.
    """
    def __init__(self, effects: Dict[str, WeatherEffect], active: str, seed: Optional[int] = None):
        self.effects = effects
        self._check_known(active)
        self.active_name = active
        self.parent: Optional[ParentTransform] = None
        # One master seed; every setup draws a fresh child from it.
        self.seed_sequence = np.random.SeedSequence(seed)

    @property
    def names(self) -> List[str]:
        return list(self.effects.keys())

    @property
    def active(self) -> WeatherEffect:
        return self.effects[self.active_name]

    def _check_known(self, name: str) -> None:
        if name not in self.effects:
            known = ", ".join(sorted(self.effects.keys()))
            raise KeyError(f"Unknown weather type '{name}'. Known: {known}")

    def setup(self, parent: ParentTransform) -> None:
        self.parent = parent
        self.active.setup(parent, self.seed_sequence.spawn(1)[0])

    def update(self, dt: float) -> None:
        self.active.update(dt)

    def change(self, name: str) -> None:
        self._check_known(name)
        if name == self.active_name:
            return
        self.active.dispose()
        logging.info(f"Weather changed from '{self.active_name}' to '{name}'.")
        self.active_name = name
        if self.parent is not None:
            self.active.setup(self.parent, self.seed_sequence.spawn(1)[0])

    def dispose(self) -> None:
        self.active.dispose()


def build_registry(config: Dict[str, Any]) -> WeatherRegistry:
    """
    Builds the registry from the "weather" section of the configuration.

    Each entry of "types" names a preset (a list of particle system
    parameter dicts under "presets") and a strength.
    """
    weather_config = config.get('weather', {})
    presets = weather_config.get('presets', {})
    types = weather_config.get('types', {})

    if not types:
        msg = "Configuration error: no weather types configured."
        logging.critical(msg)
        raise ValueError(msg)

    effects: Dict[str, WeatherEffect] = {}
    for name, spec in types.items():
        preset = spec.get('preset')
        if preset not in presets:
            msg = f"Configuration error: weather '{name}' uses unknown preset '{preset}'."
            logging.critical(msg)
            raise ValueError(msg)
        effects[name] = WeatherEffect(name, presets[preset], strength=spec.get('strength', 1.0))

    active = weather_config.get('active', next(iter(effects)))
    logging.info(f"Weather registry built with types: {', '.join(effects)}. Active: '{active}'.")
    return WeatherRegistry(effects, active, seed=weather_config.get('seed'))
