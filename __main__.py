import pulumi
from config import load_config
from hoststack import HostStackBuilder

def main():
    # Load YAML configuration
    config = load_config("config.yaml")

    builder = HostStackBuilder(config)

    try:
        builder.build()
    except Exception as e:
        pulumi.log.error(f"Failed during resource build: {e}")
        raise

    try:
        outputs = builder.build_outputs()
    except Exception as e:
        pulumi.log.error(f"Failed to build stack outputs: {e}")
        raise

    # Export created resources
    for name, resource in builder.resources.items():
        pulumi.export(name, resource.id)

    for name, value in outputs.items():
        pulumi.export(name, value)

if __name__ == "__main__":
    main()
