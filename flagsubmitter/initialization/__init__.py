import shutil
from pathlib import Path

from ..shared.logs import logger


def initialize_workspace():
    """
    Initializes the workspace in the current working directory by creating starter
    configuration files and scripts.
    """
    logger.info("Initializing workspace...")
    initialization_dir = Path(__file__).resolve().parent / "files"
    workspace_dir = Path.cwd()

    for item in initialization_dir.iterdir():
        if item.name == "__pycache__":
            continue

        destination = workspace_dir / item.name
        if destination.exists():
            logger.info(
                "⏩ Skipping creating {item_name} as it already exists.",
                item_name=item.name,
            )
            continue
        shutil.copy2(item, destination)
        logger.info("✅ Created {item_name}.", item_name=item.name)

    logger.success(
        """🎉 Workspace initialized. Next steps:

 <b>1.</> 🔧 Configure the submitter by editing <b>submitter.yaml</>.
 <b>2.</> 🧩 Optionally implement response classification in <b>classifier.py</> and set <b>classifier.module</>.
 <b>3.</> 🚀 Run <b>fsub run</> to start submitting flags.
        """
    )
