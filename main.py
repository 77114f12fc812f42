# main.py
"""
Main entry point for the weather particle demo.

This script orchestrates the entire lifecycle:
1. Loads configuration from `config.json`.
2. Initializes the logging system.
3. Builds the weather registry and the scene origin.
4. Runs the main loop, ticking the active weather every frame.
5. Handles clean shutdown.
"""
import logging
from utils import setup_logging, load_config
import cProfile
import pstats
import io


def main():
    """
    The main function to run the demo.
    """
    # Logging is not set up yet, so we use a print for this one error.
    try:
        config = load_config('config.json')
    except Exception as e:
        print(f"FATAL: Could not load config.json. Error: {e}")
        return

    setup_logging(config)

    logging.info("--- Weather Particles Starting ---")

    run_params = config.get('run_control', {})
    vis_params = config.get('visualization', {})

    from transform import ParentTransform
    from weather import build_registry

    # --- Component Initialization ---
    registry = build_registry(config)
    origin = ParentTransform()

    visualizer = None
    if vis_params.get('enabled', True):
        # Imported lazily so headless runs never touch pygame
        from visualization import Visualizer
        visualizer = Visualizer(
            zoom=vis_params.get('zoom', 1.5),
            debug=vis_params.get('debug', False),
        )

    registry.setup(origin)

    profiler = cProfile.Profile() if run_params.get('profile', False) else None

    log_throttle = run_params.get('log_throttle_steps', 100)
    max_steps = run_params.get('max_steps', 5000)
    fixed_dt = run_params.get('fixed_dt', 1.0 / 60)

    running = True
    step_num = 0

    if profiler:
        profiler.enable()
    while running:
        dt = visualizer.frame_time() if visualizer else fixed_dt
        registry.update(dt)
        step_num += 1

        if visualizer and not visualizer.draw(registry, origin, dt):
            running = False

        # Hot loops must throttle logs
        if step_num % log_throttle == 0:
            logging.info(f"Step {step_num}/{max_steps}")
            logging.debug(
                f"Step {step_num} | Weather '{registry.active_name}' | "
                f"Live particles: {registry.active.live_count()}"
            )

        if step_num >= max_steps:
            logging.info(f"Reached max_steps ({max_steps}). Stopping.")
            running = False
    if profiler:
        profiler.disable()

    registry.dispose()
    if visualizer:
        visualizer.close()
    logging.info("Main loop finished.")

    if profiler:
        logging.info("--- Performance Profile ---")
        s = io.StringIO()
        stats = pstats.Stats(profiler, stream=s).sort_stats('cumtime')
        stats.print_stats(20)
        logging.info(f"\n{s.getvalue()}")

    logging.info("--- Weather Particles Shutting Down ---")


if __name__ == "__main__":
    main()
