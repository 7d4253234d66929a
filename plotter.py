import csv
from pathlib import Path

from loguru import logger
import matplotlib.pyplot as plt


def moving_average(values, window=10):
    return [
        sum(values[max(0, i - window) : i + 1]) / len(values[max(0, i - window) : i + 1])
        for i in range(len(values))
    ]


def plot_session_history(filepath="session_history.csv", output="session_progress.png"):
    games, durations, jumps, cleared = [], [], [], []

    try:
        with Path(filepath).open() as csvfile:
            reader = csv.DictReader(csvfile)
            for row in reader:
                games.append(int(float(row["game"])))
                durations.append(float(row["duration"]))
                jumps.append(int(float(row["jumps"])))
                cleared.append(int(float(row["obstacles_cleared"])))
    except FileNotFoundError:
        logger.error(f"Error: The file '{filepath}' was not found.")
        return
    except (KeyError, ValueError) as e:
        logger.error(f"An error occurred while reading the file: {e}")
        return

    if not games:
        logger.warning(f"No games recorded in {filepath}")
        return

    fig, axs = plt.subplots(3, 1, figsize=(12, 14), sharex=True)
    fig.suptitle("JettyPilot Session Progress", fontsize=16)

    axs[0].plot(games, cleared, linestyle="-", color="b")
    axs[0].plot(games, moving_average(cleared), color="r", linestyle="--", label="10-game Moving Avg")
    axs[0].set_ylabel("Obstacles Cleared")
    axs[0].grid(True, linestyle="--", alpha=0.6)
    axs[0].legend()

    axs[1].plot(games, durations, linestyle="-", color="g")
    axs[1].set_ylabel("Duration (s)")
    axs[1].grid(True, linestyle="--", alpha=0.6)

    axs[2].plot(games, jumps, linestyle="-", color="m")
    axs[2].set_ylabel("Jumps")
    axs[2].grid(True, linestyle="--", alpha=0.6)

    plt.xlabel("Game")

    plt.savefig(output)
    logger.info(f"Saved plot to {output}")
    plt.show()


if __name__ == "__main__":
    plot_session_history()
