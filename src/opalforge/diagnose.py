"""
Script to diagnose the authenticity classifier.

Loads the configured model and label manifest, runs it on synthetic black,
white and noise images, and prints the output analysis.  Use this when
confidence scores look inverted or stuck near 0 / 100.

Usage:
    python -m src.opalforge.diagnose
"""

import sys

from src.opalforge.config import settings
from src.opalforge.services.diagnostic_service import run_diagnostics
from src.opalforge.services.manifest import load_label_manifest
from src.opalforge.services.model_service import load_classifier


def print_report(report: dict) -> None:
    print("=" * 60)
    print("OpalForge Model Diagnostics")
    print("=" * 60 + "\n")

    print("1. MODEL ARCHITECTURE:")
    print(f"   Model type:   {report['model_type']} ({report['source']})")
    print(f"   Input shape:  {report['input_shape']}")
    print(f"   Output shape: {report['output_shape']}")
    if "total_layers" in report:
        print(f"   Total layers: {report['total_layers']}")
        print(f"   Last layer:   {report['last_layer_type']} "
              f"(activation={report['last_layer_activation']})")
    print(f"   Labels:       {report['labels']} (authentic index {report['authentic_index']})")

    print("\n2. SYNTHETIC DATA TEST:")
    for name, values in report["synthetic_predictions"].items():
        print(f"   {name.capitalize():<6} image prediction: {values}")

    print("\n3. OUTPUT ANALYSIS:")
    print(f"   Sum of outputs: {report['output_sum']:.4f}")
    kind = report["output_kind"]
    if kind == "probabilities":
        print("   ✓ Outputs appear to be PROBABILITIES (softmax)")
    elif kind == "sigmoid":
        print("   ✓ Single output - likely SIGMOID activation")
    else:
        print("   ⚠ Outputs may be LOGITS - softmax normalisation needed")

    print("\n4. RECOMMENDATIONS:")
    for line in report["recommendations"]:
        print(f"   - {line}")
    print("\n" + "=" * 60)


def main() -> int:
    try:
        manifest = load_label_manifest(
            settings.manifest_path, settings.authentic_label, settings.replica_label,
        )
        model = load_classifier(settings.model_path, settings.tflite_path)
    except (OSError, RuntimeError, ValueError) as e:
        print(f"❌ Could not load model: {e}")
        return 1

    print_report(run_diagnostics(model, manifest))
    return 0


if __name__ == "__main__":
    sys.exit(main())
