import logging

from staxreports import db
from staxreports.models import ReportPreset
from staxreports.reporting.validator import parse_report_config

# (name, description, group by, metrics); every built-in is an AD report
BUILT_IN_PRESETS = [
    ('Monthly Approval Rate by Lender',
     'Approval rates broken down by lender and month, with application volumes',
     ['lender', 'month'], ['approvalRate', 'totalApplications']),
    ('Lender Execution Rates',
     'Application volume and execution rates by lender - approved to settled conversion',
     ['lender'], ['executionRate', 'totalApplications', 'approvalRate']),
    ('Commission by Retailer',
     'Total commission and loan value by retailer and finance product type',
     ['retailer', 'product'], ['commission', 'loanValue']),
    ('Application Status Breakdown',
     'Application volumes and values grouped by current status',
     ['status'], ['totalApplications', 'loanValue']),
    ('BDM Performance',
     'Compare BDM performance - application volume, approval rate, and commission',
     ['bdm'], ['totalApplications', 'approvalRate', 'commission']),
    ('Weekly Retailer Volume',
     'Application volume and loan value by retailer, broken down weekly',
     ['retailer', 'week'], ['totalApplications', 'loanValue']),
    ('Finance Product Breakdown',
     'Application volume and values by finance product type',
     ['product'], ['totalApplications', 'loanValue', 'approvalRate']),
    ('Prime vs Sub-Prime',
     'Compare prime and sub-prime applications - volume, approval rates, and values',
     ['primeSubprime'], ['totalApplications', 'approvalRate', 'loanValue']),
]


def seed_data():
    """Adds any built-in report preset that is not in the database yet."""
    added = 0
    for name, description, group_by, metrics in BUILT_IN_PRESETS:
        if ReportPreset.query.filter_by(name=name, is_built_in=True).first():
            continue
        config = parse_report_config({'name': name, 'reportType': 'AD', 'groupBy': group_by, 'metrics': metrics})
        db.session.add(ReportPreset(name=name, description=description, config=config.as_dict(),
                                    is_built_in=True))
        logging.info(f'Seeding preset: {name}')
        added += 1

    db.session.commit()
    return added
