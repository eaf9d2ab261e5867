# ==============================================================================
# run.py
# ------------------------------------------------------------------------------
# The main entry point to launch the Flask application.
# ==============================================================================

from staxreports import create_app, db
from staxreports.models import (ApplicationDecision, GeneratedReport, ReportPreset, ScheduledReport,
                                ScheduledReportRun, SyncLog)

# Create the Flask application instance using the factory function
app = create_app()

@app.shell_context_processor
def make_shell_context():
    """Provides a shell context for the `flask shell` command."""
    return {
        'db': db,
        'ApplicationDecision': ApplicationDecision,
        'ReportPreset': ReportPreset,
        'GeneratedReport': GeneratedReport,
        'ScheduledReport': ScheduledReport,
        'ScheduledReportRun': ScheduledReportRun,
        'SyncLog': SyncLog,
    }

if __name__ == '__main__':
    app.run(debug=True)
