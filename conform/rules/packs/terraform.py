"""Terraform storage baseline.

Encryption, public access and retention checks for AWS storage
resources:

- S3 buckets encrypted at rest and never public
- S3 public access blocks fully enabled
- EBS volumes encrypted
- RDS instances encrypted, private and backed up
"""

from __future__ import annotations

from conform.rules.packs import register_pack
from conform.rules.schema import Rule, RuleSeverity

_SSE = "server_side_encryption_configuration.rule.apply_server_side_encryption_by_default"


TF_STORAGE_RULES: list[Rule] = [
    Rule(
        id="s3-encryption",
        description="S3 buckets must be encrypted at rest with AES256 or KMS",
        kind="aws_s3_bucket",
        require=[{"path": f"{_SSE}.sse_algorithm", "one_of": ["AES256", "aws:kms"]}],
        severity=RuleSeverity.HIGH,
        remediation="Add a server_side_encryption_configuration block.",
    ),
    Rule(
        id="s3-no-public-acl",
        description="S3 buckets must not use a public canned ACL",
        kind="aws_s3_bucket",
        forbid=[
            {"path": "acl", "one_of": ["public-read", "public-read-write", "authenticated-read"]},
        ],
        severity=RuleSeverity.CRITICAL,
    ),
    Rule(
        id="s3-versioning",
        description="S3 buckets should enable versioning",
        kind="aws_s3_bucket",
        require=[{"path": "versioning.enabled", "equals": True}],
        optional=True,
        severity=RuleSeverity.LOW,
    ),
    Rule(
        id="s3-public-access-block",
        description="S3 public access blocks must enable every setting",
        kind="aws_s3_bucket_public_access_block",
        require={
            "block_public_acls": True,
            "block_public_policy": True,
            "ignore_public_acls": True,
            "restrict_public_buckets": True,
        },
        severity=RuleSeverity.HIGH,
    ),
    Rule(
        id="ebs-encryption",
        description="EBS volumes must be encrypted",
        kind="aws_ebs_volume",
        require={"encrypted": True},
        severity=RuleSeverity.HIGH,
    ),
    Rule(
        id="rds-encryption",
        description="RDS instances must encrypt storage",
        kind="aws_db_instance",
        require={"storage_encrypted": True},
        severity=RuleSeverity.HIGH,
    ),
    Rule(
        id="rds-not-public",
        description="RDS instances must not be publicly accessible",
        kind="aws_db_instance",
        forbid={"publicly_accessible": True},
        severity=RuleSeverity.CRITICAL,
    ),
    Rule(
        id="rds-backup-retention",
        description="RDS instances must keep backups for at least seven days",
        kind="aws_db_instance",
        require=[{"path": "backup_retention_period", "minimum": 7}],
        severity=RuleSeverity.MEDIUM,
    ),
]

# Register on import
register_pack("tf-storage", TF_STORAGE_RULES)
