from backup_exporter.main import run

run()
