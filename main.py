# main.py

import cProfile
import json
import logging
import pstats

import numpy as np

import constants
import logger_setup
from simulation import Simulation
from spawner import CadenceSpawner

# Get the application's dedicated logger
logger = logging.getLogger("ball_sim")


def run_simulation_loop(simulation, spawner, ticks: int, log_every: int = constants.LOG_EVERY):
    """
    Headless host loop: spawn on cadence, step once per tick, log throttled
    statistics. A renderer would call simulation.snapshot() after each step.
    """
    for tick in range(ticks):
        spawner.maybe_spawn(simulation)
        simulation.step()

        # --- Logging (throttled) ---
        if tick % log_every == 0:
            logger.debug(
                f"Tick={tick}, "
                f"Balls={simulation.particle_count}, "
                f"Kinetic={simulation.get_total_kinetic_energy():.2f}, "
                f"Contacts={simulation.contacts_detected}, "
                f"Resolved={simulation.contacts_resolved}, "
                f"MaxPenetration={simulation.max_penetration:.4f}, "
                f"WallContacts={simulation.wall_contacts}"
            )
    return simulation


def main(config_path='config.json'):
    """
    Main function to initialize and run the simulation for a fixed number of
    ticks under the profiler.
    """
    # --- Setup ---
    with open(config_path, 'r') as f:
        config = json.load(f)
    logger_setup.setup_logging(config)

    logger.info("Application starting...")
    logger.info(f"Loaded configuration: {config}")

    # Initialize the master random number generator (RNG)
    rng = np.random.default_rng(config['master_seed'])
    logger.info(f"Master RNG initialized with seed: {config['master_seed']}")

    # --- Initialization ---
    simulation = Simulation(config['simulation'])
    spawner = CadenceSpawner(config.get('spawning', {}), rng)
    run_config = config.get('run', {})

    # --- Profiling Run ---
    profiler = cProfile.Profile()
    profiler.enable()

    run_simulation_loop(
        simulation, spawner,
        ticks=run_config.get('ticks', 6000),
        log_every=run_config.get('log_every', constants.LOG_EVERY),
    )

    profiler.disable()
    logger.info("Profiling complete. Printing stats...")
    stats = pstats.Stats(profiler).sort_stats('cumtime')
    stats.print_stats(20)  # Print the top 20 time-consuming functions

    logger.info(f"Application shutting down after {simulation.frame} frames with {simulation.particle_count} balls.")


if __name__ == "__main__":
    main()
