# provisioning_engine/domain/stacks/jasperreports.py
"""JasperReports server - Postgres, container service on shared storage, behind an ALB."""


JASPERREPORTS_STACK = {
    "stack_id": "jasperreports",
    "description": "JasperReports server with a managed Postgres and persistent shared storage",

    "networks": [
        {"id": "vpc", "cidr": "10.0.0.0/16", "max_azs": 2},
    ],

    "security_boundaries": [
        {"id": "db-sg", "network": "vpc", "description": "Database access"},
        {"id": "service-sg", "network": "vpc", "description": "JasperReports tasks and shared filesystem"},
        {"id": "alb-sg", "network": "vpc", "description": "Public load balancer"},
    ],

    "external_references": [
        {"id": "imported-db-sg", "external_id": "sg-066dd26ee430ad091"},
    ],

    "peers": [
        {"id": "internet", "cidr": "0.0.0.0/0"},
    ],

    "data_stores": [
        {
            "id": "db",
            "engine": "postgres",
            "version": "15.4",
            "instance_class": "t3.micro",
            "network": "vpc",
            "subnet_class": "private-with-egress",
            "security_boundary": "db-sg",
            "database_name": "jasper",
            "username": "jasper",
            "subnet_group": {
                "name": "jasper-db-subnet-group",
                "description": "Private Subnets for RDS",
            },
        },
    ],

    "clusters": [
        {
            "id": "cluster",
            "network": "vpc",
            "enable_capacity_providers": True,
            "capacity_strategy": [
                {"provider": "FARGATE_SPOT", "weight": 2},
                {"provider": "FARGATE", "weight": 1},
            ],
        },
    ],

    "volumes": [
        {
            "id": "data",
            "network": "vpc",
            "security_boundary": "service-sg",
            "transit_encryption": True,
            "iam_authorization": True,
            "access_point": {
                "path": "/bitnami/jasperreports",
                "owner_uid": "1001",
                "owner_gid": "1001",
                "permissions": "755",
                "posix_uid": "1001",
                "posix_gid": "1001",
            },
        },
    ],

    "services": [
        {
            "id": "jasper-service",
            "cluster": "cluster",
            "security_boundary": "service-sg",
            "desired_count": 2,
            "health_check_grace_seconds": 1800,
            "enable_execute_command": True,
            "task": {
                "cpu": 1024,
                "memory_mib": 2048,
                "task_role": "jasper-task-role",
                "containers": [
                    {
                        "name": "jasperreports",
                        "image": "bitnami/jasperreports:8.2.0",
                        "environment": {
                            "JASPERREPORTS_DATABASE_TYPE": "postgresql",
                            "JASPERREPORTS_USE_ROOT_URL": "true",
                        },
                        "credentials": {
                            "data_store": "db",
                            "env_prefix": "JASPERREPORTS_DATABASE_",
                            "env_names": {"port": "JASPERREPORTS_DATABASE_PORT_NUMBER"},
                        },
                        "port_mappings": [{"container_port": 8080, "protocol": "tcp"}],
                        "mount_points": [
                            {"volume": "data", "container_path": "/bitnami/jasperreports"},
                        ],
                        "log_stream_prefix": "jasperreports",
                    },
                ],
            },
        },
    ],

    "load_balancers": [
        {
            "id": "alb",
            "network": "vpc",
            "security_boundary": "alb-sg",
            "internet_facing": True,
            "listeners": [
                {
                    "id": "albListener",
                    "port": 80,
                    "target_groups": [
                        {
                            "id": "albTarget",
                            "service": "jasper-service",
                            "container_name": "jasperreports",
                            "port": 8080,
                            "stickiness": {"cookie_name": "JSESSIONID", "duration_seconds": 86400},
                        },
                    ],
                },
            ],
        },
    ],

    "communications": [
        {
            "source": "internet",
            "target": "alb",
            "port": 80,
            "public_ingress": True,
            "description": "HTTP from anywhere",
        },
        {
            "source": "jasper-service",
            "target": "imported-db-sg",
            "port": 5432,
            "description": "JasperReports to Postgres",
        },
        # kept as declared; both are reported as plan warnings
        {
            "source": "internet",
            "target": "db",
            "port": 5432,
            "public_ingress": True,
        },
        {
            "source": "internet",
            "target": "jasper-service",
            "port": 8080,
            "public_ingress": True,
        },
    ],
}
