"""Starter files written by ``lutra config init``."""


def generate_yaml_template(backup_directory: str) -> str:
    return f"""# Lutra configuration file

backup_directory: {backup_directory}

# container_runtime: docker    # or podman

retention:
  max_count: 10        # Keep at most 10 backups per target
  max_age_days: 30     # Delete backups older than 30 days (when max_count also exceeded)

databases:
  # PostgreSQL example
  - name: example-postgres
    type: postgresql
    container: postgres-container    # Container name
    database: mydb                   # Database name inside the container
    username: postgres
    password_env: POSTGRES_PASSWORD  # Variable defined in the .env file
    schedule: "*-*-* 03:00:00"       # Daily at 3 AM (systemd calendar expression)
    format: custom                   # custom (.dump) or plain (.sql)
    compression: gzip

  # MongoDB example
  # - name: example-mongo
  #   type: mongodb
  #   container: mongo-container
  #   database: mydb
  #   schedule: "Sun *-*-* 04:00:00" # Weekly on Sundays at 4 AM
  #   compression: gzip

  # SQL Server example
  # - name: example-sqlserver
  #   type: sqlserver
  #   container: sqlserver-container
  #   database: MyDatabase
  #   username: sa
  #   password_env: SQLSERVER_PASSWORD
  #   schedule: "*-*-* 02:00:00"     # Daily at 2 AM
  #   compression: gzip
  #   retention:                     # Overrides the global policy
  #     max_count: 30
  #     max_age_days: 90
"""


def generate_env_template() -> str:
    return """# Lutra environment variables
# Store database passwords here (never commit this file!)

# Example PostgreSQL password
POSTGRES_PASSWORD=your-secret-password-here

# Example MongoDB password (if authentication is enabled)
# MONGO_PASSWORD=your-mongo-password

# Example SQL Server password
# SQLSERVER_PASSWORD=your-sqlserver-password
"""
