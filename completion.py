import glob
import logging
import os
from typing import List

from run_config import RunConfiguration

# some output file that shows the flow was already run
DRC_REPORT = "reports/signoff/drc.rpt"


class CompletionCheck:
    def is_complete(self, config: RunConfiguration) -> bool:
        raise NotImplementedError()

    def warn_if_stale(self, config: RunConfiguration):
        pass

    def clean_paths(self, config: RunConfiguration) -> List[str]:
        """Files to delete so that the next build runs the flow again."""
        raise NotImplementedError()


class MarkerFileCompletionCheck(CompletionCheck):
    """Treat a run as built once one expected output file exists.

    Not the best way to do this, but simple: a run that failed after writing
    the marker looks complete, and a run whose marker was deleted gets rebuilt
    even though the rest of its tree is still there.
    """

    def __init__(self, marker: str = DRC_REPORT):
        self.marker = marker

    def marker_path(self, config: RunConfiguration) -> str:
        return os.path.join(config.run_dir, self.marker)

    def is_complete(self, config: RunConfiguration) -> bool:
        return os.path.isfile(self.marker_path(config))

    def warn_if_stale(self, config: RunConfiguration):
        final_gds = glob.glob(os.path.join(config.run_dir, "results/final/gds/*.gds"))
        if not final_gds:
            logging.warning(
                f"{self.marker} exists for {config.tag} but there is no final GDS, "
                "the previous run probably failed. Run clean to force a rebuild"
            )
        else:
            logging.warning(
                f"{config.tag} is treated as built because {self.marker} exists, "
                "run clean first to rebuild"
            )

    def clean_paths(self, config: RunConfiguration) -> List[str]:
        return [self.marker_path(config)]
