"""
Shared CSV fixtures
"""
from datetime import date, timedelta

import pytest
import yaml

COSTS_CSV = """service_name,period,cost,provider_id,account_id,usage_unit
Amazon S3,2024-01,450.00,aws,111,
Amazon S3,2024-02,368.00,aws,111,
AWS Support,2024-02,100.00,aws,111,
Amazon EC2,2024-02,not-a-number,aws,111,Hrs
"""

USAGE_CSV = """service_name,period,quantity,unit,provider_id,account_id
Amazon S3,2024-01,19500,GB-Mo,aws,111
Amazon S3,2024-02,18400,GB-Mo,aws,111
"""

RESOURCES_CSV = """resource_id,resource_name,service_name,instance_type,region,monthly_cost,cpu_percent,memory_percent,network_percent
i-1,web,Amazon EC2,t3.large,us-east-1,60.00,4.5,8.0,
i-2,api,Amazon EC2,t3.large,us-east-1,60.00,55,40,10
i-3,batch,Amazon EC2,t3.large,us-east-1,60.00,,,
"""


@pytest.fixture
def costs_csv(tmp_path):
    path = tmp_path / 'costs.csv'
    path.write_text(COSTS_CSV)
    return str(path)


@pytest.fixture
def usage_csv(tmp_path):
    path = tmp_path / 'usage.csv'
    path.write_text(USAGE_CSV)
    return str(path)


@pytest.fixture
def resources_csv(tmp_path):
    path = tmp_path / 'resources.csv'
    path.write_text(RESOURCES_CSV)
    return str(path)


@pytest.fixture
def pricing_yaml(tmp_path):
    path = tmp_path / 'pricing.yaml'
    path.write_text(yaml.safe_dump({'monthly': {
        't3.medium': '30.00',
        't3.large': '60.00',
        't3.xlarge': '120.00'
    }}))
    return str(path)


@pytest.fixture
def observations_csv(tmp_path):
    """31 days of flat S3 spend followed by a spike"""
    start = date(2024, 1, 1)
    lines = ['subject,provider_id,account_id,date,cost']
    for n in range(31):
        lines.append(f"Amazon S3,aws,111,{(start + timedelta(days=n)).isoformat()},100.00")
    lines.append(f"Amazon S3,aws,111,{(start + timedelta(days=31)).isoformat()},180.00")
    path = tmp_path / 'observations.csv'
    path.write_text('\n'.join(lines) + '\n')
    return str(path)
