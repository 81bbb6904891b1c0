"""
Energy Life 3D - Entry Point

Usage:
    python -m energy_life [preset] [--size N] [--window WxH] [--render N]
                          [--snap FRAMES] [--load state.json] [--seed N]

Examples:
    python -m energy_life
    python -m energy_life hot_core --size 96
    python -m energy_life structure --snap 300
    python -m energy_life --load saved.json --window 1000x1000

Use --list to see all available presets.
"""

import os
import sys

from .presets import DEFAULT_GRID_SIZE, PRESET_ORDER, list_presets


def snap(preset, grid_size, render_size, frames, load_path=None, noise_seed=None):
    """Headless mode: run N frames, save PNG + JSON snapshot, exit."""
    from .simulation import EnergyLifeSimulation

    screenshots_dir = os.path.join(os.getcwd(), "snapshots")

    sim = EnergyLifeSimulation(
        grid_size=grid_size,
        render_size=(render_size, render_size),
        preset=preset,
        noise_seed=noise_seed,
    )
    try:
        if load_path:
            sim.load_state_file(load_path)

        print(f"  {preset}: running {frames} frames...", end="", flush=True)
        for _ in range(frames):
            sim.run(1)
            # Headless runs are not frame-time bound; let each reduction land
            sim.sync_reduction(timeout=5.0)
        sim.run(1)
        print()

        stats = sim.stats
        print(f"  mean={stats['mean']:.4f}  max={stats['max']:.4f}  "
              f"global_avg={stats['global_average']:.4f}")
        sim.export_snapshot(screenshots_dir, f"el_{preset}")
    finally:
        sim.close()


def main():
    preset = "default"
    grid_size = DEFAULT_GRID_SIZE
    render_size = 256
    win_w, win_h = 800, 800
    snap_frames = 0
    load_path = None
    noise_seed = None

    args = sys.argv[1:]
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--size" and i + 1 < len(args):
            grid_size = int(args[i + 1])
            i += 2
        elif arg == "--window" and i + 1 < len(args):
            parts = args[i + 1].split("x")
            win_w, win_h = int(parts[0]), int(parts[1])
            i += 2
        elif arg == "--render" and i + 1 < len(args):
            render_size = int(args[i + 1])
            i += 2
        elif arg == "--snap" and i + 1 < len(args):
            snap_frames = int(args[i + 1])
            i += 2
        elif arg == "--load" and i + 1 < len(args):
            load_path = args[i + 1]
            i += 2
        elif arg == "--seed" and i + 1 < len(args):
            noise_seed = int(args[i + 1])
            i += 2
        elif arg == "--list":
            print("\nAvailable presets:\n")
            for key, name, desc in list_presets():
                print(f"  {key:16s} {name:16s} {desc}")
            print()
            return
        elif arg in ("--help", "-h"):
            print(__doc__)
            return
        elif arg in PRESET_ORDER:
            preset = arg
            i += 1
        else:
            print(f"Unknown argument: {arg}")
            print("Use --list to see available presets")
            return

    if snap_frames > 0:
        print(f"Headless snap mode: {preset} @ {grid_size}^3, {snap_frames} frames")
        snap(preset, grid_size, render_size, snap_frames, load_path, noise_seed)
        return

    from .viewer import Viewer

    print("Starting Energy Life 3D Viewer")
    print(f"  Preset: {preset}")
    print(f"  Grid: {grid_size}^3")
    print(f"  Window: {win_w}x{win_h}")
    print()

    viewer = Viewer(
        width=win_w,
        height=win_h,
        grid_size=grid_size,
        render_size=render_size,
        start_preset=preset,
        noise_seed=noise_seed,
    )
    if load_path:
        viewer.sim.load_state_file(load_path)
    viewer.run()


if __name__ == "__main__":
    main()
