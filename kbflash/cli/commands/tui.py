"""Launch the interactive UI."""

from kbflash.cli.app import AppContext
from kbflash.cli.decorators import handle_errors
from kbflash.flow.orchestrator import create_orchestrator
from kbflash.tui import KbflashApp


@handle_errors
def launch_tui(app_context: AppContext) -> None:
    """Run the Textual app until the user quits."""
    orchestrator = create_orchestrator(app_context.config)
    KbflashApp(orchestrator).run()
