import pulumi
import pulumi_aws as aws
import inspect
import os
import re
from typing import Any, Dict

from config import AWSResource, Config

AWS_REGION_ABBREVIATIONS = {
    "us-east-1": "use1",
    "us-east-2": "use2",
    "us-west-1": "usw1",
    "us-west-2": "usw2",
    "af-south-1": "afs1",
    "ap-east-1": "ape1",
    "ap-south-1": "aps1",
    "ap-northeast-1": "apne1",
    "ap-northeast-2": "apne2",
    "ap-northeast-3": "apne3",
    "ap-southeast-1": "apse1",
    "ap-southeast-2": "apse2",
    "ca-central-1": "cac1",
    "eu-central-1": "euc1",
    "eu-west-1": "euw1",
    "eu-west-2": "euw2",
    "eu-west-3": "euw3",
    "eu-north-1": "eun1",
    "eu-south-1": "eus1",
    "me-south-1": "mes1",
    "sa-east-1": "sae1",
    "us-gov-east-1": "usge1",
    "us-gov-west-1": "usgw1",
    "cn-north-1": "cnn1",
    "cn-northwest-1": "cnnw1",
}

def to_snake_case(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()

def resolve_value(value: Any, resources: Dict[str, Any], base_dir: str = ".") -> Any:
    """Resolve ref:, config: and file: strings anywhere inside value."""
    if isinstance(value, dict):
        return {k: resolve_value(v, resources, base_dir) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_value(item, resources, base_dir) for item in value]
    elif isinstance(value, str):
        if value.startswith("config:"):
            # Operator supplied stack settings, e.g. the SSH key pair name
            config_key = value[len("config:"):]
            return pulumi.Config().require(config_key)
        elif value.startswith("file:"):
            # Passed through verbatim; boot scripts are not templated
            path = os.path.join(base_dir, value[len("file:"):])
            with open(path, "r") as file:
                return file.read()
        elif value.startswith("ref:"):
            ref_text = value[4:]
            if "." in ref_text:
                ref_res, ref_attr = ref_text.split(".", 1)
            else:
                ref_res, ref_attr = ref_text, "id"
            if ref_res not in resources:
                raise ValueError(f"Referenced resource '{ref_res}' not found.")
            resource_obj = resources[ref_res]
            attr_val = getattr(resource_obj, ref_attr, None)
            if attr_val is None:
                raise ValueError(f"Attribute '{ref_attr}' not found on resource '{ref_res}'")
            return attr_val
        else:
            return value
    else:
        return value

def get_lookup_params(signature: inspect.Signature, resolved_args: dict) -> dict:
    """Pick the resolved args that a get_* lookup function accepts."""
    lookup_params = {}
    for param in signature.parameters:
        if param == "opts":
            continue
        snake_key = to_snake_case(param)
        if snake_key in resolved_args:
            lookup_params[param] = resolved_args[snake_key]
        elif param in resolved_args:
            lookup_params[param] = resolved_args[param]
    return lookup_params

def init_signature(resource_class: type) -> inspect.Signature:
    # Generated resource classes overload __init__ as (*args, **kwargs); the
    # real keyword arguments live on _internal_init.
    init = getattr(resource_class, "_internal_init", resource_class.__init__)
    return inspect.signature(init)

class HostStackBuilder:
    def __init__(self, config: Config):
        self.config = config
        self.resources: Dict[str, Any] = {}
        self.outputs: Dict[str, pulumi.Output] = {}

    def get_abbreviation(self, region: str) -> str:
        return AWS_REGION_ABBREVIATIONS.get(region.lower(), region.split("-")[0].lower())

    def generate_resource_name(self, base_name: str) -> str:
        team = self.config.team.strip().lower()
        service = self.config.service.strip().lower()
        env = self.config.environment.strip().lower()
        reg_abbr = self.get_abbreviation(self.config.region)
        return f"{team}-{service}-{env}-{reg_abbr}-{base_name}".lower()

    def resolve(self, value: Any) -> Any:
        return resolve_value(value, self.resources, self.config.base_dir)

    def resolve_args(self, args: dict) -> dict:
        return {key: self.resolve(value) for key, value in args.items()}

    def _apply_common_parameters(self, resolved_args: dict, init_sig: inspect.Signature) -> dict:
        if "tags" in init_sig.parameters:
            if self.config.tags:
                resolved_args.setdefault("tags", dict(self.config.tags))
        else:
            resolved_args.pop("tags", None)
        if "region" in init_sig.parameters:
            resolved_args.setdefault("region", self.config.region)
        else:
            resolved_args.pop("region", None)
        return resolved_args

    def _resolve_type(self, resource_cfg: AWSResource):
        module_name, class_name = resource_cfg.type.rsplit(".", 1)
        module = getattr(aws, module_name, None)
        if module is None:
            raise ValueError(f"AWS module '{module_name}' not found for resource '{resource_cfg.name}'.")
        resource_class = getattr(module, class_name, None)
        if resource_class is None:
            raise ValueError(
                f"Resource class '{class_name}' not found in module '{module_name}' for resource '{resource_cfg.name}'."
            )
        return module, class_name, resource_class

    def lookup_existing(self, resource_cfg: AWSResource, module: Any, class_name: str, resolved_args: dict) -> Any:
        get_func_name = f"get_{to_snake_case(class_name)}"
        get_func = getattr(module, get_func_name, None)
        if get_func is None:
            raise ValueError(f"Function '{get_func_name}' not found for '{resource_cfg.type}'.")
        sig = inspect.signature(get_func)
        get_required = {k for k, param in sig.parameters.items() if k != "opts" and param.default == param.empty}
        get_params = get_lookup_params(sig, resolved_args)
        missing = get_required - set(get_params.keys())
        if missing:
            raise ValueError(f"Missing required params {missing} for existing resource '{resource_cfg.name}'.")
        unused = set(resolved_args) - {to_snake_case(k) for k in get_params} - set(get_params)
        if unused:
            pulumi.log.warn(f"Ignoring args {sorted(unused)} not accepted by '{get_func_name}' for '{resource_cfg.name}'.")
        if "region" in sig.parameters:
            get_params.setdefault("region", self.config.region)
        existing_resource = get_func(**get_params)
        pulumi.log.info(f"Fetched existing resource '{resource_cfg.name}' via '{get_func_name}'")
        return existing_resource

    def build(self):
        for resource_cfg in self.config.aws_resources:
            name = resource_cfg.name
            args = dict(resource_cfg.args)
            is_existing = args.pop("existing", False)
            resolved_args = self.resolve_args(args)
            module, class_name, ResourceClass = self._resolve_type(resource_cfg)

            if is_existing:
                self.resources[name] = self.lookup_existing(resource_cfg, module, class_name, resolved_args)
                continue

            init_sig = init_signature(ResourceClass)
            resolved_args = self._apply_common_parameters(resolved_args, init_sig)
            pulumi_name = resource_cfg.custom_name if resource_cfg.custom_name else self.generate_resource_name(name)
            pulumi.log.debug(f"Resolved args for '{name}': {sorted(resolved_args)}")
            resource_instance = ResourceClass(pulumi_name, **resolved_args)
            self.resources[name] = resource_instance
            pulumi.log.info(f"Created resource: {pulumi_name} ({resource_cfg.type})")
        return self.resources

    def build_outputs(self) -> Dict[str, pulumi.Output]:
        for output in self.config.outputs:
            if output.template is not None:
                values = {key: self.resolve(value) for key, value in output.values.items()}
                self.outputs[output.name] = pulumi.Output.format(output.template, **values)
            else:
                self.outputs[output.name] = pulumi.Output.from_input(self.resolve(output.value))
        return self.outputs
